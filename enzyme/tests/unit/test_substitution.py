import itertools
import logging
from pathlib import Path

import pytest

from enzyme.src.models.extraction import MARKER_PATTERN, BlockRefSubstitution
from enzyme.src.services.config import AppConfig
from enzyme.src.services.substitution import (
    UniqueMarkers,
    clean_contents,
    resolve_embeds,
    restore_markers,
    substitute_block_references,
)
from enzyme.src.services.vault import VaultService


def sequential_markers():
    counter = itertools.count(1)
    return lambda: f"%{next(counter):04x}%"


@pytest.fixture
def vault(tmp_path: Path) -> VaultService:
    config = AppConfig(vault_path=tmp_path / "vault", index_db_path=tmp_path / "index.db")
    return VaultService(config=config)


def write_note(vault: VaultService, path: str, text: str):
    target = vault.vault_root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return vault.get_file(path)


def test_every_anchor_gets_its_own_marker() -> None:
    text = "First idea ^abc\n\nSecond idea ^def\n\nThird idea ^ghi"

    result = substitute_block_references("Note", text)

    markers = [sub.template for sub in result.substitutions]
    assert len(markers) == 3
    assert len(set(markers)) == 3
    assert all(MARKER_PATTERN.fullmatch(marker) for marker in markers)
    assert "^" not in result.contents
    for marker in markers:
        assert marker in result.contents
    assert [sub.block_reference for sub in result.substitutions] == [
        "![[Note#^abc]]",
        "![[Note#^def]]",
        "![[Note#^ghi]]",
    ]


def test_repeated_anchor_gets_distinct_markers() -> None:
    result = substitute_block_references("Note", "a ^dup\nb ^dup", sequential_markers())

    assert result.contents == "a %0001%\nb %0002%"
    assert [sub.block_reference for sub in result.substitutions] == ["![[Note#^dup]]"] * 2


def test_markdown_links_are_stripped() -> None:
    result = substitute_block_references(
        "Note", "See [the docs](https://example.com) for more ^a1", sequential_markers()
    )

    assert result.contents == "See  for more %0001%"


def test_anchors_inside_markdown_links_are_not_recorded() -> None:
    result = substitute_block_references(
        "Note", "[see ^abc](https://x.io/^xyz) and ^def", sequential_markers()
    )

    assert result.contents == " and %0001%"
    assert [(sub.template, sub.block_reference) for sub in result.substitutions] == [
        ("%0001%", "![[Note#^def]]")
    ]
    for sub in result.substitutions:
        assert result.contents.count(sub.template) == 1


def test_input_without_anchors_is_unchanged() -> None:
    result = substitute_block_references("Note", "Nothing to see here.")

    assert result.substitutions == []
    assert result.contents == "Nothing to see here."


def test_unique_markers_retries_on_collision() -> None:
    source = iter(["%aaaa%", "%aaaa%", "%bbbb%"])
    markers = UniqueMarkers(lambda: next(source))

    assert markers() == "%aaaa%"
    assert markers() == "%bbbb%"


def test_unique_markers_gives_up_on_exhausted_source() -> None:
    markers = UniqueMarkers(lambda: "%aaaa%", max_attempts=5)
    markers()

    with pytest.raises(RuntimeError):
        markers()


def test_restore_markers_reverses_substitution() -> None:
    result = substitute_block_references("Book", "Quote one ^q1\n\nQuote two ^q2")
    first, second = result.substitutions
    model_output = f"Both quotes agree {first.template} and {second.template}."

    restored = restore_markers(model_output, result.substitutions)

    assert restored == "Both quotes agree ![[Book#^q1]] and ![[Book#^q2]]."


def test_restore_markers_leaves_unknown_markers() -> None:
    substitutions = [BlockRefSubstitution(template="%0001%", block_reference="![[A#^x]]")]

    assert restore_markers("%0001% %ffff%", substitutions) == "![[A#^x]] %ffff%"


def test_restore_markers_warns_on_conflicting_passes(caplog) -> None:
    substitutions = [
        BlockRefSubstitution(template="%0001%", block_reference="![[A#^x]]"),
        BlockRefSubstitution(template="%0001%", block_reference="![[B#^y]]"),
    ]

    with caplog.at_level(logging.WARNING, logger="enzyme.src.services.substitution"):
        restored = restore_markers("see %0001%", substitutions)

    assert restored == "see ![[B#^y]]"
    assert "Marker maps to more than one block reference" in caplog.text


def test_restore_markers_is_quiet_for_repeated_identical_mapping(caplog) -> None:
    substitution = BlockRefSubstitution(template="%0001%", block_reference="![[A#^x]]")

    with caplog.at_level(logging.WARNING, logger="enzyme.src.services.substitution"):
        restore_markers("%0001%", [substitution, substitution])

    assert caplog.records == []


def test_clean_contents_drops_frontmatter_and_code() -> None:
    text = "---\ntags: [idea]\n---\nBody text\n\n```python\nprint('x')\n```\n\nMore text\n"

    assert clean_contents(text) == "Body text\n\n\n\nMore text"


def test_clean_contents_keeps_text_without_frontmatter() -> None:
    assert clean_contents("  plain body  ") == "plain body"


@pytest.mark.asyncio
async def test_resolve_embeds_tracks_drift_across_growing_shrinking_and_missing(
    vault: VaultService,
) -> None:
    write_note(vault, "Target.md", "Growing block content here ^one\n\nS ^two\n")
    source_text = "A ![[Target#^one]] B ![[Target#^two]] C ![[Missing#^x]] D"
    source = write_note(vault, "Source.md", source_text)

    resolution = await resolve_embeds(
        vault, source_text, vault.get_metadata(source), source.path
    )

    assert resolution.text == "A Growing block content here ^one B S ^two C  D"
    tail = source_text.index(" D")
    assert resolution.text[resolution.translate(tail) :] == " D"
    middle = source_text.index(" C ")
    assert resolution.text[resolution.translate(middle) :].startswith(" C ")


@pytest.mark.asyncio
async def test_non_block_embeds_resolve_to_empty(vault: VaultService) -> None:
    write_note(vault, "Target.md", "# Heading\n\nBody ^one\n")
    source_text = "x ![[Target]] y ![[Target#Heading]] z"
    source = write_note(vault, "Source.md", source_text)

    resolution = await resolve_embeds(
        vault, source_text, vault.get_metadata(source), source.path
    )

    assert resolution.text == "x  y  z"


@pytest.mark.asyncio
async def test_missing_block_in_existing_target_resolves_to_empty(vault: VaultService) -> None:
    write_note(vault, "Target.md", "Body ^one\n")
    source_text = "before ![[Target#^nope]] after"
    source = write_note(vault, "Source.md", source_text)

    resolution = await resolve_embeds(
        vault, source_text, vault.get_metadata(source), source.path
    )

    assert resolution.text == "before  after"
