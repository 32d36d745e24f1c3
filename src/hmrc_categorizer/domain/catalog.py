from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from hmrc_categorizer.models import IncomeSource, TransactionType


class CategoryInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    description: str
    hmrc_reference: str
    restrictions: str | None = None
    allowed_business_types: tuple[str, ...] | None = None
    exemption_limit: int | None = None


def _section(*entries: CategoryInfo) -> Mapping[str, CategoryInfo]:
    return MappingProxyType({entry.code: entry for entry in entries})


SELF_EMPLOYMENT_EXPENSES = _section(
    CategoryInfo(
        code="costOfGoodsBought",
        name="Cost of goods bought",
        description="Raw materials, stock, goods bought for resale",
        hmrc_reference="SE040",
        allowed_business_types=("retail", "wholesale", "manufacturing", "trading"),
    ),
    CategoryInfo(
        code="cisPaymentsToSubcontractors",
        name="CIS payments to subcontractors",
        description="Construction Industry Scheme payments",
        hmrc_reference="SE045",
        allowed_business_types=("construction", "building"),
    ),
    CategoryInfo(
        code="staffCosts",
        name="Staff costs",
        description="Wages, salaries, subcontractor payments, employer NICs",
        hmrc_reference="SE050",
    ),
    CategoryInfo(
        code="travelCosts",
        name="Travel costs",
        description="Business travel, fuel, parking, hotel stays (not home to work)",
        hmrc_reference="SE055",
    ),
    CategoryInfo(
        code="premisesRunningCosts",
        name="Premises running costs",
        description="Rent, business rates, heating, lighting, cleaning",
        hmrc_reference="SE060",
    ),
    CategoryInfo(
        code="maintenanceCosts",
        name="Maintenance costs",
        description="Repairs and maintenance of property and equipment",
        hmrc_reference="SE065",
    ),
    CategoryInfo(
        code="adminCosts",
        name="Admin costs",
        description="Phone, fax, stationery, postage, small equipment",
        hmrc_reference="SE070",
    ),
    CategoryInfo(
        code="advertisingCosts",
        name="Advertising costs",
        description="Advertising, marketing, website costs",
        hmrc_reference="SE075",
    ),
    CategoryInfo(
        code="businessEntertainmentCosts",
        name="Business entertainment costs",
        description="Entertaining clients, customer hospitality",
        hmrc_reference="SE080",
        restrictions="Staff entertainment allowable, client entertainment not deductible",
    ),
    CategoryInfo(
        code="interestOnBankOtherLoans",
        name="Interest on bank and other loans",
        description="Business loan interest, hire purchase interest",
        hmrc_reference="SE085",
    ),
    CategoryInfo(
        code="financialCharges",
        name="Financial charges",
        description="Bank charges, credit card charges, factoring charges",
        hmrc_reference="SE090",
    ),
    CategoryInfo(
        code="badDebt",
        name="Bad debt",
        description="Irrecoverable debts written off",
        hmrc_reference="SE095",
    ),
    CategoryInfo(
        code="professionalFees",
        name="Professional fees",
        description="Accountant, solicitor, architect, surveyor fees",
        hmrc_reference="SE100",
    ),
    CategoryInfo(
        code="depreciation",
        name="Depreciation",
        description="Depreciation of equipment and machinery",
        hmrc_reference="SE105",
        restrictions="Use capital allowances instead",
    ),
    CategoryInfo(
        code="other",
        name="Other allowable business expenses",
        description="Other allowable business expenses not covered above",
        hmrc_reference="SE110",
    ),
)

SELF_EMPLOYMENT_INCOME = _section(
    CategoryInfo(
        code="turnover",
        name="Turnover",
        description="Business sales, fees, commission, self-employment income",
        hmrc_reference="SE010",
    ),
    CategoryInfo(
        code="other",
        name="Other business income",
        description="Other business income (grants, insurance payouts, etc.)",
        hmrc_reference="SE015",
    ),
)

PROPERTY_EXPENSES = _section(
    CategoryInfo(
        code="premisesRunningCosts",
        name="Premises running costs",
        description="Rent, rates, insurance, ground rent",
        hmrc_reference="PR040",
    ),
    CategoryInfo(
        code="repairsAndMaintenance",
        name="Repairs and maintenance",
        description="Maintenance, repairs, redecoration",
        hmrc_reference="PR045",
    ),
    CategoryInfo(
        code="financialCosts",
        name="Financial costs",
        description="Mortgage interest, loan interest (restrictions apply)",
        hmrc_reference="PR050",
        restrictions="Basic rate tax relief only from April 2020",
    ),
    CategoryInfo(
        code="professionalFees",
        name="Professional fees",
        description="Letting agent fees, legal fees, accountant fees",
        hmrc_reference="PR055",
    ),
    CategoryInfo(
        code="costOfServices",
        name="Cost of services",
        description="Gardening, cleaning, security services",
        hmrc_reference="PR060",
    ),
    CategoryInfo(
        code="travelCosts",
        name="Travel costs",
        description="Travel to inspect properties",
        hmrc_reference="PR065",
    ),
    CategoryInfo(
        code="other",
        name="Other allowable property expenses",
        description="Other allowable property expenses",
        hmrc_reference="PR070",
    ),
)

PROPERTY_INCOME = _section(
    CategoryInfo(
        code="premiumsOfLeaseGrant",
        name="Premiums of lease grant",
        description="Property premiums received",
        hmrc_reference="PR010",
    ),
    CategoryInfo(
        code="reversePremiums",
        name="Reverse premiums",
        description="Reverse premiums",
        hmrc_reference="PR015",
    ),
    CategoryInfo(
        code="periodAmount",
        name="Rental income",
        description="Rental income received",
        hmrc_reference="PR020",
    ),
    CategoryInfo(
        code="rentARoom",
        name="Rent-a-room income",
        description="Rent-a-room income (max £7,500 exemption)",
        hmrc_reference="PR025",
        exemption_limit=7500,
    ),
)

HMRC_CATEGORIES: Mapping[str, Mapping[str, Mapping[str, CategoryInfo]]] = MappingProxyType({
    "selfEmployment": MappingProxyType({
        "expenses": SELF_EMPLOYMENT_EXPENSES,
        "income": SELF_EMPLOYMENT_INCOME,
    }),
    "property": MappingProxyType({
        "expenses": PROPERTY_EXPENSES,
        "income": PROPERTY_INCOME,
    }),
})


def section_for(transaction_type: TransactionType) -> str:
    return "income" if transaction_type == "income" else "expenses"


def categories_for(
    income_source: IncomeSource,
    transaction_type: TransactionType | None = None,
) -> tuple[str, ...]:
    """Category codes of one namespace, optionally limited to one side."""
    namespace = HMRC_CATEGORIES[income_source]
    if transaction_type is not None:
        return tuple(namespace[section_for(transaction_type)])
    codes = list(namespace["expenses"])
    codes.extend(code for code in namespace["income"] if code not in codes)
    return tuple(codes)


def get_category_info(
    category: str | None,
    income_source: IncomeSource | None = None,
    transaction_type: TransactionType | None = None,
) -> CategoryInfo | None:
    """
    Look a code up in one namespace, or both when ``income_source`` is None.
    With ``transaction_type`` only that side is searched, so an income row never
    picks up the description of an expense code that shares its name.
    """
    if not category:
        return None
    sources = (income_source,) if income_source else ("selfEmployment", "property")
    sections = (section_for(transaction_type),) if transaction_type else ("expenses", "income")
    for source in sources:
        namespace = HMRC_CATEGORIES[source]
        for section in sections:
            if category in namespace[section]:
                return namespace[section][category]
    return None


def get_hmrc_guidance(
    category: str | None,
    income_source: IncomeSource | None = None,
    transaction_type: TransactionType | None = None,
) -> str:
    info = get_category_info(category, income_source, transaction_type)
    if info:
        return f"{info.description}. HMRC Reference: {info.hmrc_reference}"
    return "Please refer to HMRC guidance for this category"
