from .llm import Classifier, OpenAIClassifier, get_classifier
from .models import AdjustmentSuggestion, CorrectionAnalysis, RelevancyVerdict

__all__ = [
    "AdjustmentSuggestion",
    "Classifier",
    "CorrectionAnalysis",
    "OpenAIClassifier",
    "RelevancyVerdict",
    "get_classifier",
]
