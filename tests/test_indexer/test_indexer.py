"""Tests for the Indexer class."""

import threading
from pathlib import Path

import pytest

from design_wiki.indexer import Indexer


def write_doc(root: Path, relative_path: str, content: str) -> Path:
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def wiki_root(tmp_path: Path) -> Path:
    root = tmp_path / "wiki-docs"
    write_doc(
        root,
        "combat/spell.md",
        "---\nscope: combat\nalias: 法术, magic\n---\nA spell.\n\n<!-- more -->\n"
        "【治疗量】：按法强计算\n%% [dmg] = <atk> * 2 %%\n",
    )
    write_doc(
        root,
        "combat/fireball.md",
        "---\nscope: combat\nalias: magic missile\n---\nA fireball.\n",
    )
    write_doc(root, "movement/dash.md", "---\nscope: movement\n---\nQuick dash.\n")
    write_doc(root, "notes/plain.md", "No front matter here.\n【冲刺】：快速移动\n")
    write_doc(root, ".drafts/hidden.md", "---\nscope: secret\n---\nHidden.\n")
    return root


@pytest.fixture
def indexer(wiki_root: Path) -> Indexer:
    idx = Indexer(wiki_root)
    idx.rebuild()
    return idx


def terms_for(indexer: Indexer, relative_path: str) -> list[tuple[str, tuple[str, ...]]]:
    return sorted(
        (t.term, tuple(t.aliases))
        for t in indexer.all_terms()
        if t.file_path == relative_path
    )


class TestIndexerRebuild:
    def test_rebuild_counts_documents(self, wiki_root: Path):
        assert Indexer(wiki_root).rebuild() == 4

    def test_rebuild_indexes_aliases(self, indexer: Indexer):
        snapshot = indexer.snapshot()
        assert {"spell", "法术", "magic", "fireball", "magic missile", "dash"} <= set(
            snapshot.terms
        )
        assert snapshot.terms["治疗量"][0].definition_type == "inline"
        assert snapshot.terms["冲刺"][0].file_path == "notes/plain.md"

    def test_rebuild_indexes_formulas_by_calculated_value(self, indexer: Indexer):
        formulas = indexer.get_formulas("dmg")
        assert len(formulas) == 1
        assert formulas[0].design_values == ["atk"]
        assert formulas[0].file_path == "combat/spell.md"

    def test_scopes_listed_once(self, indexer: Indexer):
        assert indexer.scopes == ["combat", "movement"]

    def test_hidden_files_not_indexed(self, indexer: Indexer):
        assert "secret" not in indexer.scopes
        assert indexer.search("hidden") == []

    def test_build_time_set(self, indexer: Indexer):
        assert indexer.build_time > 0

    def test_missing_root_raises_and_keeps_index(self, wiki_root: Path, tmp_path: Path):
        idx = Indexer(wiki_root)
        idx.rebuild()
        before = idx.snapshot().to_dict()

        idx.wiki_root = tmp_path / "gone"
        with pytest.raises(FileNotFoundError):
            idx.rebuild()

        assert idx.snapshot().to_dict() == before

    def test_unreadable_file_skipped(self, wiki_root: Path):
        (wiki_root / "broken.md").write_bytes(b"---\nscope: x\n---\n\xff\xfe bad")
        idx = Indexer(wiki_root)
        assert idx.rebuild() == 4
        assert "x" not in idx.scopes

    def test_date_like_front_matter_does_not_abort_rebuild(self, wiki_root: Path):
        write_doc(wiki_root, "log/patch.md", "---\nalias:\ndate: 2024-02-30\n---\nPatch notes.\n")
        idx = Indexer(wiki_root)
        assert idx.rebuild() == 5
        assert idx.get_term("patch")[0].definition == "Patch notes."

    def test_yaml_alias_list_indexed_item_by_item(self, wiki_root: Path):
        write_doc(wiki_root, "movement/slide.md", "---\nalias:\n  - \"slip, slide\"\n  - 滑移\n---\nSlide.\n")
        idx = Indexer(wiki_root)
        idx.rebuild()
        assert idx.get_term("slip, slide")[0].term == "slide"
        assert idx.get_term("slip") == []

    def test_rebuild_drops_deleted_files(self, wiki_root: Path, indexer: Indexer):
        (wiki_root / "movement" / "dash.md").unlink()
        indexer.rebuild()
        assert indexer.get_term("dash") == []
        assert indexer.scopes == ["combat"]


class TestIndexerUpdateFile:
    def test_update_picks_up_new_content(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "movement/dash.md", "---\nalias: sprint\n---\nFaster dash.\n")
        indexer.update_file("movement/dash.md")

        terms = indexer.get_term("sprint")
        assert len(terms) == 1
        assert terms[0].definition == "Faster dash."

    def test_update_removes_stale_aliases(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "combat/spell.md", "---\nscope: combat\n---\nRenamed.\n")
        indexer.update_file("combat/spell.md")

        snapshot = indexer.snapshot()
        assert "法术" not in snapshot.terms
        assert "治疗量" not in snapshot.terms
        assert "dmg" not in snapshot.formulas
        # The other file's alias survives
        assert "magic missile" in snapshot.terms

    def test_update_is_idempotent(self, indexer: Indexer):
        before = terms_for(indexer, "combat/spell.md")
        indexer.update_file("combat/spell.md")
        indexer.update_file("combat/spell.md")

        assert terms_for(indexer, "combat/spell.md") == before
        assert len(indexer.get_term("spell")) == 1
        assert len(indexer.get_formulas("dmg")) == 1

    def test_update_new_file(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "items/potion.md", "---\nalias: 药水\n---\nRestores health.\n")
        indexer.update_file("items/potion.md")
        assert indexer.get_term("药水")[0].file_path == "items/potion.md"

    def test_update_missing_file_is_removal(self, wiki_root: Path, indexer: Indexer):
        (wiki_root / "combat" / "spell.md").unlink()
        indexer.update_file("combat/spell.md")
        assert terms_for(indexer, "combat/spell.md") == []

    def test_update_does_not_recompute_scopes(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "economy/gold.md", "---\nscope: economy\n---\nCurrency.\n")
        indexer.update_file("economy/gold.md")
        assert "economy" not in indexer.scopes
        assert indexer.get_term("gold")[0].scope == "economy"

    def test_update_refreshes_build_time(self, indexer: Indexer):
        before = indexer.build_time
        indexer.update_file("combat/spell.md")
        assert indexer.build_time >= before

    def test_update_ignores_paths_outside_root(self, indexer: Indexer):
        before = indexer.snapshot().terms.keys()
        indexer.update_file("../outside.md")
        assert indexer.snapshot().terms.keys() == before


class TestIndexerRemoveFile:
    def test_remove_drops_all_entries(self, indexer: Indexer):
        indexer.remove_file("combat/spell.md")

        snapshot = indexer.snapshot()
        assert "spell" not in snapshot.terms
        assert "法术" not in snapshot.terms
        assert "dmg" not in snapshot.formulas
        assert all(
            t.file_path != "combat/spell.md"
            for terms in snapshot.terms.values()
            for t in terms
        )

    def test_remove_then_search_finds_nothing_from_file(self, indexer: Indexer):
        indexer.remove_file("combat/spell.md")
        for query in ["spell", "法术", "治疗量", "magic"]:
            assert all(t.file_path != "combat/spell.md" for t in indexer.search(query))

    def test_remove_keeps_shared_alias_from_other_file(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "other/heal.md", "【治疗量】：另一个定义\n")
        indexer.update_file("other/heal.md")
        assert len(indexer.get_term("治疗量")) == 2

        indexer.remove_file("combat/spell.md")
        remaining = indexer.get_term("治疗量")
        assert [t.file_path for t in remaining] == ["other/heal.md"]

    def test_remove_unknown_file_is_noop(self, indexer: Indexer):
        before = indexer.snapshot().terms.keys()
        indexer.remove_file("nope.md")
        assert indexer.snapshot().terms.keys() == before


class TestIndexerSearch:
    def test_empty_query_returns_nothing(self, indexer: Indexer):
        assert indexer.search("") == []

    def test_case_insensitive_substring(self, indexer: Indexer):
        results = indexer.search("MAGIC")
        assert {(t.file_path, t.term) for t in results} == {
            ("combat/spell.md", "spell"),
            ("combat/fireball.md", "fireball"),
        }

    def test_term_matched_by_two_aliases_appears_once(self, indexer: Indexer):
        # "fireball" and "magic missile" both contain "i"
        results = indexer.search("i")
        keys = [(t.file_path, t.term) for t in results]
        assert sorted(keys) == [
            ("combat/fireball.md", "fireball"),
            ("combat/spell.md", "spell"),
        ]

    def test_shared_substring_across_files(self, wiki_root: Path, indexer: Indexer):
        write_doc(wiki_root, "items/dash_boots.md", "---\nalias: boots\n---\nBoots.\n")
        indexer.update_file("items/dash_boots.md")
        results = indexer.search("dash")
        assert sorted(t.file_path for t in results) == [
            "items/dash_boots.md",
            "movement/dash.md",
        ]

    def test_no_match(self, indexer: Indexer):
        assert indexer.search("zzz") == []

    def test_results_are_copies(self, indexer: Indexer):
        results = indexer.search("spell")
        results[0].aliases.append("tampered")
        results[0].definition = "changed"
        fresh = indexer.get_term("spell")[0]
        assert "tampered" not in fresh.aliases
        assert fresh.definition == "A spell."


class TestIndexerSnapshot:
    def test_snapshot_is_deep_copy(self, indexer: Indexer):
        snapshot = indexer.snapshot()
        snapshot.terms["spell"][0].definition = "mutated"
        snapshot.terms.pop("dash")
        snapshot.scopes.append("bogus")

        again = indexer.snapshot()
        assert again.terms["spell"][0].definition == "A spell."
        assert "dash" in again.terms
        assert "bogus" not in again.scopes

    def test_to_dict_shape(self, indexer: Indexer):
        data = indexer.snapshot().to_dict()
        assert set(data) == {"terms", "formulas", "scopes", "buildTime"}
        spell = data["terms"]["spell"][0]
        assert spell["filePath"] == "combat/spell.md"
        assert spell["definitionType"] == "file"
        assert spell["hasMore"] is True
        assert "hasMore" not in data["terms"]["fireball"][0]
        formula = data["formulas"]["dmg"][0]
        assert formula["calculatedValues"] == ["dmg"]
        assert formula["designValues"] == ["atk"]


class TestIndexerConcurrency:
    def test_searches_during_updates(self, wiki_root: Path, indexer: Indexer):
        errors: list[BaseException] = []
        stop = threading.Event()

        def searcher():
            try:
                while not stop.is_set():
                    for term in indexer.search("magic"):
                        assert term.file_path in {"combat/spell.md", "combat/fireball.md"}
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=searcher) for _ in range(4)]
        for t in threads:
            t.start()
        try:
            for i in range(30):
                write_doc(
                    wiki_root,
                    "combat/spell.md",
                    f"---\nalias: magic\n---\nVersion {i}.\n",
                )
                indexer.update_file("combat/spell.md")
                if i % 10 == 0:
                    indexer.rebuild()
        finally:
            stop.set()
            for t in threads:
                t.join(timeout=5.0)

        assert errors == []
        assert indexer.get_term("spell")[0].definition == "Version 29."

    def test_update_during_rebuild_is_not_lost(self, wiki_root: Path, indexer: Indexer, monkeypatch):
        walking = threading.Event()
        release = threading.Event()
        original_parse = indexer._parse

        def slow_parse(path, relative_path):
            result = original_parse(path, relative_path)
            if relative_path == "combat/spell.md" and not walking.is_set():
                walking.set()
                release.wait(timeout=5.0)
            return result

        monkeypatch.setattr(indexer, "_parse", slow_parse)

        rebuild = threading.Thread(target=indexer.rebuild)
        rebuild.start()
        assert walking.wait(timeout=5.0)

        write_doc(wiki_root, "combat/spell.md", "---\nalias: magic\n---\nNewer.\n")
        update = threading.Thread(target=indexer.update_file, args=("combat/spell.md",))
        update.start()
        release.set()
        rebuild.join(timeout=5.0)
        update.join(timeout=5.0)

        assert indexer.get_term("spell")[0].definition == "Newer."
