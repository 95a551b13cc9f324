"""
Pytest configuration and shared fixtures.

- story_tree: temporary story root with stations 1-3
- story_store / document_store / ledger / interpreter: wired against it
"""

import json

import pytest

from storyloom.ledger.choice_ledger import ChoiceLedger
from storyloom.ledger.document_store import DocumentStore
from storyloom.story.interpreter import PlaceholderInterpreter
from storyloom.story.story_store import StoryStore

STORY_ONE = {
    "blocks": [
        {"id": "h1", "type": "scene-header", "titleName": "Intro"},
        {"id": "p1", "type": "plain", "text": "Hello "},
        {"id": "q1", "type": "static", "options": ["X", "Y"]},
        {"id": "h2", "type": "scene-header", "titleName": "Forest"},
        {"id": "p2", "type": "plain", "text": "The path splits. "},
        {
            "id": "dyn-opt",
            "type": "dynamic",
            "generateOptions": True,
            "prompt": "You picked {get answer of question#q1 from this player}. What next?",
            "context": [{"value": "q1", "includeAll": False}],
        },
        {
            "id": "dyn-text",
            "type": "dynamic",
            "prompt": "Continue the story.",
            "context": [{"value": "q1", "includeAll": True}],
        },
    ]
}

STORY_TWO = {
    "blocks": [
        {"id": "h3", "type": "scene-header", "titleName": "Return"},
        {"id": "q2", "type": "static", "options": ["A", "B"]},
        {"id": "q3", "type": "static", "options": ["C", "D"]},
        {"id": "dyn2", "type": "dynamic", "prompt": "Recap."},
    ]
}

STORY_THREE = {
    "blocks": [
        {"id": "intro", "type": "scene-header", "titleName": "Intro"},
        {"id": "hello", "type": "plain", "text": "Hello "},
        {"id": "pick", "type": "static", "options": ["X", "Y"]},
    ]
}


def _write_story(root, story_id, data):
    path = root / f"station{story_id}" / "input" / "story.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def story_tree(tmp_path):
    """Temporary story root with stories 1, 2 and 3."""
    root = tmp_path / "stories"
    _write_story(root, 1, STORY_ONE)
    _write_story(root, 2, STORY_TWO)
    _write_story(root, 3, STORY_THREE)
    return root


@pytest.fixture
def story_store(story_tree):
    return StoryStore(story_root=story_tree, default_story_ids=[1, 2])


@pytest.fixture
def document_store(tmp_path):
    store = DocumentStore(db_path=tmp_path / "db.sqlite", archive_dir=tmp_path / "archives")
    yield store
    store.close()


@pytest.fixture
def ledger(document_store):
    return ChoiceLedger(document_store)


@pytest.fixture
def interpreter(story_store, ledger):
    return PlaceholderInterpreter(story_store, ledger)
