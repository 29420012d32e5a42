"""LLM classify-and-extract contract: prompt, response schema, parser, classifier."""

from lead_qualifier.classifier.llm.schemas import (
    ClassifyAndExtractResult,
    Correction,
    ExtractionItem,
    IntentResult,
)
from lead_qualifier.classifier.llm.parser import default_result, parse_classify_and_extract_response
from lead_qualifier.classifier.llm.prompts import (
    ClassificationRequest,
    build_classification_request,
    build_classify_and_extract_prompt,
)
from lead_qualifier.classifier.llm.classifier import ClassifyFn, LLMClassifier, TextGenerationClient

__all__ = [
    "ClassifyAndExtractResult",
    "Correction",
    "ExtractionItem",
    "IntentResult",
    "default_result",
    "parse_classify_and_extract_response",
    "ClassificationRequest",
    "build_classification_request",
    "build_classify_and_extract_prompt",
    "ClassifyFn",
    "LLMClassifier",
    "TextGenerationClient",
]
