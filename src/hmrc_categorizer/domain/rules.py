"""Static rule tables used by the categorizer.

Iteration order of ``KEYWORD_MAPPINGS`` is significant: the keyword scorer
breaks ties in favour of the category listed first.
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class BusinessTypeRule:
    primary_expenses: tuple[str, ...]
    income_categories: tuple[str, ...] = ("turnover",)
    cost_of_goods_required: bool = False
    typical_expense_ratios: Mapping[str, tuple[float, float]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    requires_cis_tracking: bool = False
    home_office_eligible: bool = False


BUSINESS_TYPE_RULES: Mapping[str, BusinessTypeRule] = MappingProxyType({
    "retail": BusinessTypeRule(
        primary_expenses=("costOfGoodsBought", "premisesRunningCosts", "staffCosts"),
        cost_of_goods_required=True,
        typical_expense_ratios=MappingProxyType({
            "costOfGoodsBought": (0.3, 0.7),
            "premisesRunningCosts": (0.05, 0.2),
        }),
    ),
    "wholesale": BusinessTypeRule(
        primary_expenses=("costOfGoodsBought", "travelCosts", "adminCosts"),
        cost_of_goods_required=True,
        typical_expense_ratios=MappingProxyType({
            "costOfGoodsBought": (0.4, 0.8),
        }),
    ),
    "services": BusinessTypeRule(
        primary_expenses=("professionalFees", "adminCosts", "travelCosts"),
        typical_expense_ratios=MappingProxyType({
            "professionalFees": (0.02, 0.15),
        }),
    ),
    "construction": BusinessTypeRule(
        primary_expenses=("cisPaymentsToSubcontractors", "costOfGoodsBought", "travelCosts"),
        cost_of_goods_required=True,
        requires_cis_tracking=True,
        typical_expense_ratios=MappingProxyType({
            "cisPaymentsToSubcontractors": (0.1, 0.6),
        }),
    ),
    "property": BusinessTypeRule(
        primary_expenses=("financialCosts", "repairsAndMaintenance", "professionalFees"),
        income_categories=("periodAmount", "premiumsOfLeaseGrant"),
    ),
    "freelancer": BusinessTypeRule(
        primary_expenses=("adminCosts", "professionalFees", "travelCosts"),
        home_office_eligible=True,
    ),
})

# Always permitted on top of a business type's primary expenses
COMMON_CATEGORIES = ("adminCosts", "professionalFees", "financialCharges", "other")

# Accepted by the batch entry point without restricting categories
GENERAL_BUSINESS_TYPE = "general"

KEYWORD_MAPPINGS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "costOfGoodsBought": (
        "stock", "inventory", "raw materials", "goods for resale",
        "materials", "supplies", "components", "parts",
        "wholesale purchase", "trade purchase", "supplier invoice",
    ),
    "cisPaymentsToSubcontractors": (
        "cis", "construction industry scheme", "subcontractor",
        "building contractor", "trades", "scaffolding",
        "plumbing", "electrical", "roofing", "plastering",
    ),
    "staffCosts": (
        "salary", "wages", "payroll", "employee", "staff",
        "national insurance", "pension contribution", "paye",
        "recruitment", "agency fees", "temporary staff",
    ),
    "travelCosts": (
        "travel", "fuel", "petrol", "diesel", "mileage",
        "train ticket", "flight", "hotel", "accommodation",
        "parking", "toll", "taxi", "uber", "car rental",
    ),
    "premisesRunningCosts": (
        "rent", "rates", "business rates", "council tax",
        "utilities", "electricity", "gas", "water",
        "heating", "lighting", "cleaning", "security",
        "insurance premises", "building insurance",
    ),
    "maintenanceCosts": (
        "repairs", "maintenance", "servicing", "fix",
        "plumber", "electrician", "decorator", "painter",
        "equipment repair", "machinery service", "hvac",
    ),
    "adminCosts": (
        "stationery", "office supplies", "postage", "courier",
        "telephone", "mobile phone", "internet", "broadband",
        "software", "subscriptions", "printing", "photocopying",
    ),
    "advertisingCosts": (
        "advertising", "marketing", "promotion", "website",
        "seo", "google ads", "facebook ads", "social media",
        "brochure", "flyer", "banner", "exhibition",
    ),
    "businessEntertainmentCosts": (
        "staff party", "team building", "staff meal",
        "christmas party", "staff entertainment", "employee event",
    ),
    "interestOnBankOtherLoans": (
        "loan interest", "business loan", "overdraft interest",
        "hire purchase interest", "finance interest",
        "equipment finance", "asset finance",
    ),
    "financialCharges": (
        "bank charges", "bank fees", "transaction fees",
        "credit card fees", "merchant fees", "factoring",
        "invoice discounting", "currency exchange",
    ),
    "badDebt": (
        "bad debt", "write off", "irrecoverable debt",
        "debt provision", "uncollectable", "defaulted payment",
    ),
    "professionalFees": (
        "accountant", "solicitor", "lawyer", "legal fees",
        "audit", "bookkeeping", "tax advice", "consultant",
        "architect", "surveyor", "valuation", "professional advice",
    ),
    "depreciation": (
        "depreciation", "amortisation", "capital allowance",
        "writing down allowance", "annual investment allowance",
    ),
    # Property
    "repairsAndMaintenance": (
        "property repairs", "maintenance", "redecoration",
        "painting", "flooring", "bathroom repair", "kitchen repair",
        "boiler service", "roof repair", "window repair",
    ),
    "financialCosts": (
        "mortgage interest", "property loan interest",
        "buy-to-let mortgage", "bridging loan interest",
    ),
    "costOfServices": (
        "gardening", "garden maintenance", "cleaning service",
        "property management", "security service", "concierge",
    ),
    # Income
    "turnover": (
        "sales", "takings", "commission", "fee income",
        "customer receipt", "client receipt", "consultancy income",
    ),
    "periodAmount": (
        "rent received", "rental income", "tenant", "rent from", "letting income",
    ),
    "premiumsOfLeaseGrant": ("lease premium", "premium on lease"),
    "reversePremiums": ("reverse premium",),
    "rentARoom": ("rent a room", "lodger"),
})

# Checked in this order; the first hit decides the guidance shown
NON_ALLOWABLE_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "personal": (
        "personal", "private", "family", "spouse", "partner", "children",
        "gym", "health club", "fitness", "personal trainer",
        "clothing", "suit", "dress", "shoes", "personal care",
        "home improvement", "personal insurance", "life insurance",
        "groceries", "grocery", "supermarket", "weekly shop",
        "tesco", "sainsbury", "asda", "morrisons", "aldi", "lidl",
    ),
    "finesAndPenalties": (
        "parking fine", "speeding fine", "penalty", "court fine",
        "hmrc penalty", "tax penalty", "interest on tax",
        "late payment surcharge",
    ),
    "capitalExpenditures": (
        "furniture", "fixtures", "fittings", "equipment over",
    ),
    "nonDeductible": (
        "dividend", "salary draw", "personal drawings", "drawings",
        "business entertainment", "client lunch", "client dinner",
        "client entertainment", "political donation", "charitable donation",
        "client gifts over",
    ),
})

NON_ALLOWABLE_GUIDANCE: Mapping[str, str] = MappingProxyType({
    "personal": (
        "Personal expenses are not allowable. Only expenses wholly and exclusively "
        "for business purposes can be deducted."
    ),
    "finesAndPenalties": "Fines and penalties are not allowable business expenses.",
    "capitalExpenditures": (
        "Capital expenditure is not allowable as a business expense. "
        "Consider capital allowances instead."
    ),
    "nonDeductible": "This type of expense is specifically not allowable under HMRC rules.",
    "potential_personal": "Ensure this expense is wholly and exclusively for business use",
})

POTENTIAL_PERSONAL_THRESHOLD = 500
PERSONAL_INDICATORS = (
    "personal", "family", "home", "private", "grocery", "groceries",
    "restaurant", "clothing", "entertainment",
)

CAPITAL_THRESHOLD = 500
CAPITAL_INDICATORS = (
    "building", "property purchase", "land", "equipment purchase",
    "machinery", "vehicle purchase", "major renovation",
    "extension", "new roof", "structural",
)
CAPITAL_EQUIPMENT_TERMS = ("equipment", "machinery", "computer", "laptop")

PROPERTY_INCOME_KEYWORDS = ("rent", "rental", "property", "landlord", "tenant", "letting")

GENERIC_PAYMENT_TERMS = ("payment", "invoice")
REFUND_TERMS = ("refund", "credit")
VAGUE_TERMS = ("payment", "transaction", "transfer", "misc", "other", "various")

MIXED_USE_INDICATORS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "homeOffice": ("home office", "home working", "office at home"),
    "motorExpenses": ("car", "vehicle", "fuel", "mileage"),
    "mobilePhone": ("mobile", "telephone", "phone"),
    "utilities": ("electricity", "gas", "internet", "broadband"),
    "insurance": ("insurance",),
})

MIXED_USE_GUIDANCE: Mapping[str, str] = MappingProxyType({
    "homeOffice": (
        "For home office expenses, you can use simplified expenses (£4/hour) or claim "
        "actual costs based on business use percentage."
    ),
    "motorExpenses": (
        "For vehicle expenses, use mileage rates (45p/25p per mile) or actual costs "
        "with business use percentage."
    ),
    "utilities": (
        "Only the business portion of utilities can be claimed. Calculate based on "
        "business use of the property."
    ),
    "insurance": (
        "Only business insurance is fully deductible. Personal insurance is not allowable."
    ),
    "mobilePhone": (
        "Business calls and data usage can be claimed. Separate business and personal use."
    ),
})

# (freelancer percentage, everyone else)
SUGGESTED_BUSINESS_PERCENTAGES: Mapping[str, tuple[int, int]] = MappingProxyType({
    "homeOffice": (25, 15),
    "motorExpenses": (50, 50),
    "utilities": (20, 10),
    "insurance": (100, 100),
    "mobilePhone": (80, 50),
})

COMMON_ALTERNATIVES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "adminCosts": ("professionalFees", "other"),
    "travelCosts": ("other",),
    "premisesRunningCosts": ("maintenanceCosts", "other"),
    "maintenanceCosts": ("premisesRunningCosts", "other"),
    "repairsAndMaintenance": ("costOfServices", "other"),
    "professionalFees": ("adminCosts", "other"),
    "other": ("adminCosts", "professionalFees"),
})
