"""Ollama LLM client: the "ask an agent" capability used by the swarm."""
import httpx
import os
import logging
from typing import List, Dict, Optional

logger = logging.getLogger(__name__)


def _merge_fields(response: str, thinking: str) -> str:
    """Merge Ollama response and thinking into a single parseable text.

    Normalizes the two possible thinking modes:
    1. Both fields populated: wrap thinking in <think> tags, prepend to response.
       Parsers that strip <think> see response; parsers that search full text
       find content in either field.
    2. Only thinking populated: return thinking as-is (no wrapping) so parsers
       see structured content directly.
    3. Only response populated: return response (standard case).
    """
    r = (response or "").strip()
    t = (thinking or "").strip()
    if not t:
        return r
    if not r:
        return t
    return f"<think>{t}</think>\n{r}"


class OllamaClient:
    """Ollama client supporting both local and cloud API endpoints.

    Every swarm agent is bound to a model name; all models are served through
    the same host, so one client instance serves the whole panel.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        num_ctx: int = 0,
        think: bool = False,
        request_timeout: float = 300.0,
    ):
        self.host = host or os.getenv("OLLAMA_HOST", "https://api.ollama.com")
        self.default_model = model or os.getenv("LLM_MODEL_DEFAULT", "gpt-oss:120b")
        self.api_key = api_key if api_key is not None else os.getenv("OLLAMA_API_KEY")
        self.num_ctx = num_ctx  # 0 = use model default
        self.think = think
        self.request_timeout = request_timeout

    def _get_headers(self) -> Dict[str, str]:
        """Return headers with optional Authorization for Ollama Cloud API."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str],
        temperature: float,
        max_tokens: int,
        think: Optional[bool],
    ) -> Dict:
        options = {
            "temperature": temperature,
            "num_predict": max_tokens,
        }
        if self.num_ctx > 0:
            options["num_ctx"] = self.num_ctx
        return {
            "model": model or self.default_model,
            "messages": messages,
            "options": options,
            "think": think if think is not None else self.think,
            "stream": False,
            "format": "json",
        }

    async def chat_async(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        think: Optional[bool] = None,
    ) -> Dict:
        """
        Send a chat completion request to Ollama.

        The request runs on an httpx.AsyncClient so that callers can bound it
        with asyncio.wait_for and have the request actually cancelled.

        Returns dict with 'response' text, 'thinking' text, 'merged' text
        (normalized for parsing), 'eval_count' (tokens), 'eval_duration' (ns).
        """
        payload = self._build_payload(messages, model, temperature, max_tokens, think)

        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            resp = await client.post(
                f"{self.host}/api/chat",
                json=payload,
                headers=self._get_headers(),
            )
            resp.raise_for_status()

        data = resp.json()
        msg = data.get("message", {})
        response = msg.get("content", "")
        thinking = msg.get("thinking", "")
        return {
            "response": response,
            "thinking": thinking,
            "merged": _merge_fields(response, thinking),
            "eval_count": data.get("eval_count", 0),
            "eval_duration": data.get("eval_duration", 0),
        }

    async def ask(self, system_prompt: str, user_prompt: str, model: Optional[str] = None) -> str:
        """Ask a model for an analysis and return the merged response text."""
        result = await self.chat_async(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            model=model,
            temperature=0.4,
            max_tokens=2048,
        )
        return result["merged"]

    async def is_available(self) -> bool:
        """Check if Ollama is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(
                    f"{self.host}/api/tags",
                    headers=self._get_headers(),
                )
                return resp.status_code == 200
        except httpx.HTTPError:
            return False
