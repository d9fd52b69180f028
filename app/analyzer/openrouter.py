"""OpenRouter client for commit summary generation"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from app.analyzer.model_registry import ModelConfiguration, default_model_config, get_model_by_id
from app.analyzer.retry import RetryPolicy, linear_backoff

import config

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert software engineer who analyzes git commits and provides clear, concise "
    "summaries. Focus on the 'why' behind the change, not just the 'what'. "
    "Keep summaries to 1-2 sentences maximum."
)


class GenerationError(Exception):
    """A model attempt failed and should not be retried on the same model"""


class TransientGenerationError(GenerationError):
    """Rate limit or transport failure; the same model may be retried"""


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransientGenerationError)


@dataclass
class CommitFacts:
    """Commit details sent to the model"""
    sha: str
    message: str
    files_changed: int
    additions: int
    deletions: int


@dataclass
class SummaryResult:
    """Outcome of a summary request; both fields are None when every model failed"""
    sha: Optional[str] = None
    summary: Optional[str] = None
    model_used: Optional[str] = None


class OpenRouterClient:
    """Client for the OpenRouter chat completions API with per-model fallback"""

    def __init__(
        self,
        api_key: str = None,
        model_config: ModelConfiguration = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = None,
        batch_size: int = None,
        batch_delay: float = None,
        transport: httpx.AsyncBaseTransport = None,
        sleep: Callable[[float], Awaitable[None]] = None,
    ):
        self.api_key = api_key or config.OPENROUTER_API_KEY
        if not self.api_key:
            raise ValueError("OpenRouter API key is required")

        self.base_url = (base_url or config.OPENROUTER_BASE_URL).rstrip("/")
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.model_config = model_config or default_model_config()
        self.batch_size = batch_size or config.SUMMARY_BATCH_SIZE
        self.batch_delay = config.SUMMARY_BATCH_DELAY if batch_delay is None else batch_delay
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self.retry_policy = RetryPolicy(
            max_attempts=config.GENERATION_MAX_RETRIES if max_retries is None else max_retries,
            base_delay=config.GENERATION_RETRY_DELAY if retry_delay is None else retry_delay,
            backoff=linear_backoff,
            is_retryable=is_transient,
            sleep=self._sleep,
        )

    def update_config(self, model_config: ModelConfiguration):
        """Swap the active model configuration"""
        self.model_config = model_config

    def candidate_models(self, preferred_model: str = None) -> List[str]:
        """Models to try in order: preferred, primary, fallback, then the rest of enabled"""
        ordered = [
            *([preferred_model] if preferred_model else []),
            self.model_config.primary,
            self.model_config.fallback,
            *self.model_config.enabled,
        ]
        return list(dict.fromkeys(m for m in ordered if m))

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": config.SITE_URL,
            "X-Title": "GitLegend Analysis",
        }

    async def _request_completion(self, messages: List[Dict[str, str]], model_id: str) -> str:
        """Issue one chat completion request and return the trimmed content"""
        payload = {
            "model": model_id,
            "messages": messages,
            "temperature": 0.7,
            "max_tokens": 150,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TransportError as e:
            raise TransientGenerationError(f"Transport error: {e!r}") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"HTTP error: {e!r}") from e

        if response.status_code == 429:
            raise TransientGenerationError(f"HTTP 429: {response.text[:200]}")
        if response.status_code >= 400:
            raise GenerationError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError(f"Response was not JSON: {response.text[:200]}") from e

        if not isinstance(data, dict):
            raise GenerationError(f"Unexpected payload type: {type(data).__name__}")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise GenerationError(f"API Error: {message}")

        choices = data.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        content = (message or {}).get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("No content in response")

        return content.strip()

    async def _try_model(self, messages: List[Dict[str, str]], model_id: str) -> Optional[str]:
        """Run one model through the retry policy; None when it ultimately fails"""
        if get_model_by_id(model_id) is None:
            logger.warning(f"Model {model_id} not found in registry, skipping")
            return None

        try:
            return await self.retry_policy.run(lambda: self._request_completion(messages, model_id))
        except GenerationError as e:
            logger.warning(f"Model {model_id} failed: {e}")
            return None

    async def generate_summary(
        self,
        message: str,
        files_changed: int,
        additions: int,
        deletions: int,
        preferred_model: str = None
    ) -> SummaryResult:
        """Summarize a commit, falling back across models until one succeeds"""
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    "Summarize this git commit for a technical audience:\n\n"
                    f"Commit Message: {message}\n\n"
                    f"Files Changed: {files_changed}\n"
                    f"Additions: {additions}\n"
                    f"Deletions: {deletions}"
                ),
            },
        ]

        for model_id in self.candidate_models(preferred_model):
            content = await self._try_model(messages, model_id)
            if content:
                return SummaryResult(summary=content, model_used=model_id)

        return SummaryResult()

    async def _summarize(self, commit: CommitFacts, preferred_model: str = None) -> SummaryResult:
        result = await self.generate_summary(
            commit.message,
            commit.files_changed,
            commit.additions,
            commit.deletions,
            preferred_model,
        )
        result.sha = commit.sha
        return result

    async def batch_generate_summaries(
        self,
        commits: Sequence[CommitFacts],
        preferred_model: str = None
    ) -> List[SummaryResult]:
        """Summarize commits in small concurrent batches with a pause between batches"""
        results: List[SummaryResult] = []

        for start in range(0, len(commits), self.batch_size):
            batch = commits[start:start + self.batch_size]
            results.extend(await asyncio.gather(
                *(self._summarize(commit, preferred_model) for commit in batch)
            ))

            if start + self.batch_size < len(commits):
                await self._sleep(self.batch_delay)

        return results

    async def test_model_availability(self, model_id: str) -> bool:
        """Probe a model with a minimal prompt"""
        content = await self._try_model([{"role": "user", "content": "Hello"}], model_id)
        return content is not None

    async def get_available_models(self) -> List[str]:
        """Enabled models that currently answer a probe"""
        available = []
        for model_id in self.model_config.enabled:
            if await self.test_model_availability(model_id):
                available.append(model_id)
        return available
