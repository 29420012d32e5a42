"""LLM-based classify-and-extract collaborator."""
from typing import Any, Callable, Dict, Protocol

from lead_qualifier.classifier.llm.parser import default_result, parse_classify_and_extract_response
from lead_qualifier.classifier.llm.prompts import ClassificationRequest, build_classify_and_extract_prompt
from lead_qualifier.classifier.llm.schemas import ClassifyAndExtractResult
from lead_qualifier.logger import logger

# The seam the turn pipeline depends on; anything with this shape works
ClassifyFn = Callable[[ClassificationRequest], ClassifyAndExtractResult]


class TextGenerationClient(Protocol):
    """Minimal client interface: prompt in, raw text out."""

    def generate(self, prompt: str) -> str:
        ...


class LLMClassifier:
    """
    Classifier on top of a text-generation client.

    Builds the prompt, calls the client, parses the response defensively and
    drops extractions for fields the flow does not collect. Client failures
    degrade to the default result (clarification_question, nothing extracted)
    so the conversation simply asks again.
    """

    def __init__(self, client: TextGenerationClient):
        """
        Args:
            client: Text-generation client (transport, retries and provider
                    selection are its concern)
        """
        self.client = client

        self._llm_calls = 0
        self._llm_successes = 0
        self._fallback_calls = 0
        self._extraction_corrections = 0

    def __call__(self, request: ClassificationRequest) -> ClassifyAndExtractResult:
        return self.classify(request)

    def classify(self, request: ClassificationRequest) -> ClassifyAndExtractResult:
        """
        Classify a message and extract field values.

        Args:
            request: Prompt inputs for the current turn

        Returns:
            ClassifyAndExtractResult (never raises)
        """
        self._llm_calls += 1

        try:
            prompt = build_classify_and_extract_prompt(request)
            raw = self.client.generate(prompt)
        except Exception as e:
            logger.error("LLM classifier error", error=str(e)[:200], state=request.state_id)
            self._fallback_calls += 1
            return default_result()

        if raw is None:
            logger.warning("LLM classifier returned None, using defaults", state=request.state_id)
            self._fallback_calls += 1
            return default_result()

        self._llm_successes += 1
        result = parse_classify_and_extract_response(raw)
        return self._drop_unknown_fields(result, request)

    def _drop_unknown_fields(
        self,
        result: ClassifyAndExtractResult,
        request: ClassificationRequest
    ) -> ClassifyAndExtractResult:
        """Remove extractions and corrections for keys outside the flow."""
        known_keys = {f.mapping_key for f in request.collectable_fields}
        if not known_keys:
            return result

        kept = [item for item in result.extracted if item.mapping_key in known_keys]
        removed = [item.mapping_key for item in result.extracted if item.mapping_key not in known_keys]
        correction = result.correction
        if correction is not None and correction.mapping_key not in known_keys:
            removed.append(correction.mapping_key)
            correction = None

        if removed:
            self._extraction_corrections += 1
            logger.info(
                "Extraction validation removed unknown fields",
                removed=removed,
                state=request.state_id,
            )

        return result.model_copy(update={"extracted": kept, "correction": correction})

    def get_stats(self) -> Dict[str, Any]:
        """Classifier statistics."""
        success_rate = (self._llm_successes / self._llm_calls * 100) if self._llm_calls > 0 else 0
        return {
            "llm_calls": self._llm_calls,
            "llm_successes": self._llm_successes,
            "fallback_calls": self._fallback_calls,
            "llm_success_rate": round(success_rate, 1),
            "extraction_corrections": self._extraction_corrections,
        }
