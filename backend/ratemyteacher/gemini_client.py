from __future__ import annotations
import json
import re
import httpx
from typing import Any, Dict, Optional
from .settings import settings

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_reply(text: str) -> Any:
	"""Decode a model reply that should be JSON, tolerating markdown fences."""
	cleaned = _FENCE_RE.sub("", (text or "").strip())
	return json.loads(cleaned)


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=30)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._openrouter_api_key = settings.openrouter_api_key
		if self._openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=30)

	async def generate(self, prompt: str) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (httpx.HTTPError, KeyError, IndexError, ValueError) as err:
			if self._fallback_client is None:
				raise RuntimeError(f"Gemini call failed: {err}") from err
			return await self._fallback_generate(prompt, err)

	async def generate_json(self, prompt: str) -> Any:
		return parse_json_reply(await self.generate(prompt))

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Exception) -> str:
		headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		payload: Dict[str, Any] = {
			"model": settings.openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(settings.openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, KeyError, IndexError, ValueError) as fallback_err:
			raise RuntimeError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
