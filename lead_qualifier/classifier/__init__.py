"""Intent classification and field extraction."""

from lead_qualifier.classifier.llm import (
    ClassificationRequest,
    ClassifyAndExtractResult,
    ClassifyFn,
    ExtractionItem,
    LLMClassifier,
    build_classification_request,
    build_classify_and_extract_prompt,
    parse_classify_and_extract_response,
)

__all__ = [
    "ClassificationRequest",
    "ClassifyAndExtractResult",
    "ClassifyFn",
    "ExtractionItem",
    "LLMClassifier",
    "build_classification_request",
    "build_classify_and_extract_prompt",
    "parse_classify_and_extract_response",
]
