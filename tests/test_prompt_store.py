"""Tests for the in-memory prompt store"""

import pytest

from layout_gauge_core.prompt_store import PromptNotFoundError, PromptStore


@pytest.fixture
def store():
    return PromptStore()


class TestRegisterPrompt:
    def test_register_and_get(self, store):
        prompt = store.register_prompt("layout", "v1.0", "Detect sections")
        assert prompt.prompt_id.startswith("prompt_")
        assert store.get_prompt(prompt.prompt_id) is prompt
        assert prompt.is_active is False

    def test_explicit_prompt_id(self, store):
        prompt = store.register_prompt("layout", "v1.0", "text", prompt_id="p-1")
        assert prompt.prompt_id == "p-1"

    def test_ids_are_unique(self, store):
        ids = {store.register_prompt("layout", "v1.0", "text").prompt_id for _ in range(50)}
        assert len(ids) == 50

    def test_get_unknown_raises(self, store):
        with pytest.raises(PromptNotFoundError):
            store.get_prompt("missing")

    def test_list_prompts_filters_by_task(self, store):
        a = store.register_prompt("layout", "v1.0", "a")
        store.register_prompt("other", "v1.0", "b")
        c = store.register_prompt("layout", "v1.1", "c")
        assert store.list_prompts("layout") == [a, c]
        assert len(store.list_prompts()) == 3


class TestActivePrompt:
    def test_no_active_prompt_raises(self, store):
        store.register_prompt("layout", "v1.0", "text")
        with pytest.raises(PromptNotFoundError, match="layout"):
            store.get_active_prompt("layout")

    def test_unknown_task_raises(self, store):
        with pytest.raises(PromptNotFoundError):
            store.get_active_prompt("missing")

    def test_get_active_prompt(self, store):
        store.register_prompt("layout", "v1.0", "old")
        active = store.register_prompt("layout", "v1.1", "new", is_active=True)
        assert store.get_active_prompt("layout") is active

    def test_several_active_returns_newest(self, store):
        store.register_prompt("layout", "v1.0", "old", is_active=True)
        newest = store.register_prompt("layout", "v1.1", "new", is_active=True)
        assert store.get_active_prompt("layout") is newest

    def test_activate_deactivates_siblings_only(self, store):
        v1 = store.register_prompt("layout", "v1.0", "old", is_active=True)
        v2 = store.register_prompt("layout", "v1.1", "new")
        other = store.register_prompt("other", "v1.0", "x", is_active=True)

        store.activate(v2.prompt_id)

        assert v1.is_active is False
        assert v2.is_active is True
        assert other.is_active is True
        assert store.get_active_prompt("layout") is v2

    def test_activate_unknown_raises(self, store):
        with pytest.raises(PromptNotFoundError):
            store.activate("missing")


class TestRecordPerformance:
    def test_rolling_mean(self, store):
        prompt = store.register_prompt("layout", "v1.0", "text")
        store.record_performance(prompt.prompt_id, 1.0)
        store.record_performance(prompt.prompt_id, 0.5)
        store.record_performance(prompt.prompt_id, 0.0)
        assert prompt.usage_count == 3
        assert prompt.performance_score == pytest.approx(0.5)

    def test_unknown_prompt_raises(self, store):
        with pytest.raises(PromptNotFoundError):
            store.record_performance("missing", 1.0)


class TestNextVersion:
    @pytest.mark.parametrize("version,expected", [
        ("v1.0", "v1.0.1"),
        ("v1.0.1", "v1.0.2"),
        ("v1.0.9", "v1.0.10"),
        ("v1", "v1.1"),
        ("unversioned", "unversioned.1"),
    ])
    def test_next_version(self, version, expected):
        assert PromptStore.next_version(version) == expected

    def test_next_free_version_skips_registered_labels(self, store):
        store.register_prompt("layout", "v1.0.1", "Variant A")
        store.register_prompt("layout", "v1.0.2", "Variant B")
        store.register_prompt("other", "v1.0.3", "Other task")
        assert store.next_free_version("layout", "v1.0") == "v1.0.3"
        assert store.next_free_version("other", "v1.0") == "v1.0.1"
