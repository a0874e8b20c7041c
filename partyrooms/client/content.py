"""Static game content: spot prompts and impostor categories."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
import random
from typing import Any

import httpx

from partyrooms.client.errors import ContentError

logger = logging.getLogger(__name__)

PROMPTS_FILE = "spot-prompts.json"
CATEGORIES_FILE = "impostor-categories.json"


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


async def _fetch_json(source: str) -> Any:
    if source.startswith(("http://", "https://")):
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(source, headers={"Cache-Control": "no-store"})
        except httpx.HTTPError as exc:
            raise ContentError(f"Could not download {source}: {exc}") from exc
        if response.status_code >= 400:
            raise ContentError(f"Could not download {source} (HTTP {response.status_code}).")
        text = response.text
    else:
        try:
            text = await asyncio.to_thread(Path(source).expanduser().read_text, encoding="utf-8")
        except OSError as exc:
            raise ContentError(f"Could not read {source}: {exc}") from exc
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ContentError(f"{source} is not valid JSON.") from exc


def parse_prompts(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict) or not isinstance(data.get("prompts"), list):
        raise ContentError("The prompts file does not have the expected format.")
    prompts: list[dict[str, Any]] = []
    for entry in data["prompts"]:
        if not isinstance(entry, dict):
            continue
        prompt_id = _clean(entry.get("id"))
        text = _clean(entry.get("text"))
        if not prompt_id or not text:
            continue
        prompt: dict[str, Any] = {"id": prompt_id, "text": text}
        if isinstance(entry.get("category"), str):
            prompt["category"] = entry["category"]
        prompts.append(prompt)
    if not prompts:
        raise ContentError("The prompts file has no valid cards.")
    return prompts


def parse_categories(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict) or not isinstance(data.get("categories"), list):
        raise ContentError("The categories file does not have the expected format.")
    categories: list[dict[str, Any]] = []
    for entry in data["categories"]:
        if not isinstance(entry, dict) or not isinstance(entry.get("words"), list):
            continue
        category_id = _clean(entry.get("id"))
        label = _clean(entry.get("label"))
        words = [word for word in (_clean(item) for item in entry["words"]) if word]
        if category_id and label and words:
            categories.append({"id": category_id, "label": label, "words": words})
    if not categories:
        raise ContentError("The categories file has no valid entries.")
    return categories


async def load_prompts(source: str) -> list[dict[str, Any]]:
    return parse_prompts(await _fetch_json(source))


async def load_categories(source: str) -> list[dict[str, Any]]:
    return parse_categories(await _fetch_json(source))


def pick_next_prompt(
    prompts: list[dict[str, Any]],
    used_ids: list[str] | None,
    rng: random.Random | None = None,
) -> dict[str, Any] | None:
    """Pick a random prompt not played yet in this room; reuse the full list once exhausted."""
    if not prompts:
        return None
    used = set(used_ids or [])
    fresh = [prompt for prompt in prompts if prompt["id"] not in used]
    pool = fresh or prompts
    return (rng or random).choice(pool)


class ContentLibrary:
    """Fetch-once cache over a directory path or base URL holding the content files."""

    def __init__(self, base: str | None) -> None:
        self.base = base.rstrip("/") if base else None
        self._cache: dict[str, list[dict[str, Any]]] = {}

    def _source(self, filename: str) -> str:
        if self.base is None:
            raise ContentError("Game content location is not configured (PARTYROOMS_CONTENT_BASE).")
        return f"{self.base}/{filename}"

    async def get(self, kind: str) -> list[dict[str, Any]]:
        if kind in self._cache:
            return self._cache[kind]
        if kind == "prompts":
            items = await load_prompts(self._source(PROMPTS_FILE))
        elif kind == "categories":
            items = await load_categories(self._source(CATEGORIES_FILE))
        else:
            raise ContentError(f"Unknown content kind {kind!r}.")
        logger.info("Loaded %d %s", len(items), kind)
        self._cache[kind] = items
        return items
