from abc import ABC, abstractmethod

from hmrc_categorizer.models import AIRequest


class AIClassifier(ABC):
    @abstractmethod
    async def classify(self, request: AIRequest) -> str:
        """Return the backend's raw text answer for the prompt."""
        pass
