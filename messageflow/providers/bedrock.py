"""AWS Bedrock provider: Converse API via boto3."""

import asyncio

from messageflow.errors import ProviderError
from messageflow.providers.base import Completion, LLMProvider


class BedrockProvider(LLMProvider):
    """Sends prompts to AWS Bedrock. Uses IAM credentials; api_key is ignored."""

    name = "bedrock"
    timeout = 60.0
    retry_delay = 0.5

    def __init__(self, config):
        super().__init__(config)
        self._client = None

    def _get_client(self):
        """Lazy-init boto3 client (avoids import when not needed)."""
        if self._client is None:
            import boto3
            from messageflow.config.settings import get_settings

            settings = get_settings()
            self._client = boto3.client(
                "bedrock-runtime", region_name=settings.aws_region
            )
        return self._client

    @staticmethod
    def _translate_request(
        prompt: str, model_id: str, max_tokens: int, temperature: float
    ) -> dict:
        """Build Converse params for a single user turn."""
        kwargs = {
            "modelId": model_id,
            "messages": [{"role": "user", "content": [{"text": prompt}]}],
        }
        inference_config = {}
        if max_tokens:
            inference_config["maxTokens"] = max_tokens
        if temperature is not None:
            inference_config["temperature"] = temperature
        if inference_config:
            kwargs["inferenceConfig"] = inference_config
        return kwargs

    @staticmethod
    def _translate_response(response: dict) -> Completion:
        output_msg = response.get("output", {}).get("message", {})
        content_blocks = output_msg.get("content", [])
        text = "".join(block.get("text", "") for block in content_blocks)
        usage = response.get("usage", {})
        return Completion(
            text=text,
            input_tokens=usage.get("inputTokens", 0),
            output_tokens=usage.get("outputTokens", 0),
        )

    def _call_converse(self, **kwargs) -> dict:
        """Synchronous Converse API call (run via asyncio.to_thread)."""
        return self._get_client().converse(**kwargs)

    @staticmethod
    def _map_bedrock_error(e: Exception) -> ProviderError:
        """Map boto3 exceptions to ProviderErrors."""
        if isinstance(getattr(e, "response", None), dict):
            error_code = e.response.get("Error", {}).get("Code", "")
        else:
            error_code = type(e).__name__

        if error_code == "ThrottlingException":
            return ProviderError(status_code=429, detail="Bedrock rate limit exceeded")
        elif error_code == "ValidationException":
            return ProviderError(status_code=400, detail=f"Bedrock validation error: {e}")
        elif error_code == "ModelNotReadyException":
            return ProviderError(status_code=503, detail="Bedrock model not ready")
        elif error_code == "AccessDeniedException":
            return ProviderError(status_code=403, detail="Bedrock access denied -- check IAM permissions")
        return ProviderError(status_code=502, detail=f"Bedrock error: {e}")

    async def _complete(
        self, prompt: str, *, max_tokens: int, temperature: float, json_mode: bool
    ) -> Completion:
        if not self.config.model_name:
            raise ProviderError(status_code=400, detail="model_name is required for Bedrock")

        kwargs = self._translate_request(prompt, self.config.model_name, max_tokens, temperature)
        try:
            response = await asyncio.to_thread(self._call_converse, **kwargs)
        except Exception as e:
            raise self._map_bedrock_error(e) from e

        completion = self._translate_response(response)
        if not completion.text:
            raise ProviderError(status_code=502, detail="bedrock returned an empty response")
        return completion

    async def close(self) -> None:
        # boto3 clients don't need explicit cleanup
        self._client = None
