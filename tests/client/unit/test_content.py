import asyncio
import json
from pathlib import Path
import random

import pytest

from partyrooms.client.content import (
    CATEGORIES_FILE,
    PROMPTS_FILE,
    ContentLibrary,
    parse_categories,
    parse_prompts,
    pick_next_prompt,
)
from partyrooms.client.errors import ContentError


def test_parse_prompts_skips_invalid_cards() -> None:
    prompts = parse_prompts(
        {
            "prompts": [
                {"id": " p1 ", "text": " Most likely to sing? ", "category": "fun"},
                {"id": "p2", "text": "   "},
                "junk",
                {"text": "no id"},
            ]
        }
    )

    assert prompts == [{"id": "p1", "text": "Most likely to sing?", "category": "fun"}]


def test_parse_prompts_rejects_wrong_shape_or_empty_list() -> None:
    with pytest.raises(ContentError):
        parse_prompts({"cards": []})
    with pytest.raises(ContentError):
        parse_prompts({"prompts": [{"id": "", "text": ""}]})


def test_parse_categories_keeps_non_blank_words() -> None:
    categories = parse_categories(
        {
            "categories": [
                {"id": "fruit", "label": "Fruit", "words": ["apple", " ", "pear "]},
                {"id": "empty", "label": "Empty", "words": [""]},
                {"id": "bad", "label": "Bad", "words": "apple"},
            ]
        }
    )

    assert categories == [{"id": "fruit", "label": "Fruit", "words": ["apple", "pear"]}]


def test_pick_next_prompt_avoids_used_prompts_until_exhausted() -> None:
    prompts = [{"id": "p1", "text": "A"}, {"id": "p2", "text": "B"}]
    rng = random.Random(7)

    assert pick_next_prompt(prompts, ["p1"], rng)["id"] == "p2"
    assert pick_next_prompt(prompts, ["p1", "p2"], rng)["id"] in {"p1", "p2"}
    assert pick_next_prompt([], None) is None


def test_library_reads_and_caches_local_files(tmp_path: Path) -> None:
    (tmp_path / PROMPTS_FILE).write_text(json.dumps({"prompts": [{"id": "p1", "text": "A"}]}), encoding="utf-8")
    (tmp_path / CATEGORIES_FILE).write_text(
        json.dumps({"categories": [{"id": "c1", "label": "Fruit", "words": ["apple"]}]}),
        encoding="utf-8",
    )
    library = ContentLibrary(str(tmp_path))

    prompts = asyncio.run(library.get("prompts"))
    (tmp_path / PROMPTS_FILE).unlink()

    assert asyncio.run(library.get("prompts")) == prompts
    assert asyncio.run(library.get("categories"))[0]["label"] == "Fruit"


def test_library_reports_missing_location_and_files(tmp_path: Path) -> None:
    with pytest.raises(ContentError):
        asyncio.run(ContentLibrary(None).get("prompts"))
    with pytest.raises(ContentError):
        asyncio.run(ContentLibrary(str(tmp_path)).get("categories"))
    with pytest.raises(ContentError):
        asyncio.run(ContentLibrary(str(tmp_path)).get("sounds"))
