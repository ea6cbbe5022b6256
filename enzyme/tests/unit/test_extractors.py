import itertools
import os
from pathlib import Path

import pytest

from enzyme.src.models.extraction import Strategy
from enzyme.src.services.config import AppConfig
from enzyme.src.services.errors import NoteNotFoundError
from enzyme.src.services.extractors import ExtractorDelegator
from enzyme.src.services.vault import VaultService


def sequential_markers():
    counter = itertools.count(1)
    return lambda: f"%{next(counter):04x}%"


@pytest.fixture
def vault(tmp_path: Path) -> VaultService:
    config = AppConfig(vault_path=tmp_path / "vault", index_db_path=tmp_path / "index.db")
    return VaultService(config=config)


@pytest.fixture
def extractor(vault: VaultService) -> ExtractorDelegator:
    return ExtractorDelegator(vault, marker_source=sequential_markers())


def write_note(vault: VaultService, path: str, text: str, mtime: float | None = None):
    target = vault.vault_root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(target, (mtime, mtime))
    return vault.get_file(path)


def paragraphs(count: int) -> str:
    return "\n\n".join(f"P{index}" for index in range(count)) + "\n"


@pytest.mark.asyncio
async def test_whole_file_resolves_embeds_cleans_and_substitutes(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    write_note(vault, "Quotes.md", "A sharp quote ^q1\n")
    note = write_note(
        vault,
        "Daily.md",
        "---\ntags: [daily]\n---\nToday I reread ![[Quotes#^q1]]\n\n```\ncode\n```\nDone ^d1\n",
        mtime=86400,
    )

    [contents] = await extractor.extract(note)

    assert contents.file == "Daily"
    assert contents.last_modified_date == "1970-01-02"
    assert contents.contents == "Today I reread A sharp quote %0001%\n\n\nDone %0002%"
    assert [sub.block_reference for sub in contents.substitutions] == [
        "![[Daily#^q1]]",
        "![[Daily#^d1]]",
    ]


@pytest.mark.asyncio
async def test_trim_to_end_keeps_short_files_whole(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    note = write_note(vault, "Book.md", paragraphs(3))

    [contents] = await extractor.extract(note, strategy=Strategy.LONG_CONTENT.value)

    assert contents.contents == "P0\n\nP1\n\nP2"


@pytest.mark.asyncio
async def test_trim_to_end_starts_at_fifth_from_last_section(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    note = write_note(vault, "Book.md", paragraphs(8))

    [contents] = await extractor.extract(note, strategy="LongContent")

    assert contents.contents == "P3\n\nP4\n\nP5\n\nP6\n\nP7"


@pytest.mark.asyncio
async def test_trim_to_end_translates_boundary_past_resolved_embeds(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    write_note(vault, "Source.md", "A much longer embedded highlight ^h1\n")
    text = "Intro ![[Source#^h1]]\n\n" + "\n\n".join(f"P{index}" for index in range(1, 6)) + "\n"
    note = write_note(vault, "Book.md", text)

    [contents] = await extractor.extract(note, strategy=Strategy.LONG_CONTENT)

    assert contents.contents == "P1\n\nP2\n\nP3\n\nP4\n\nP5"


@pytest.mark.asyncio
async def test_trim_section_count_is_configurable(vault: VaultService) -> None:
    note = write_note(vault, "Book.md", paragraphs(8))
    extractor = ExtractorDelegator(vault, trim_section_count=2)

    [contents] = await extractor.extract(note, strategy="LongContent")

    assert contents.contents == "P6\n\nP7"


@pytest.mark.asyncio
async def test_unknown_and_selection_only_strategies_use_whole_file(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    note = write_note(vault, "Note.md", paragraphs(8))

    for strategy in (None, "Nonsense", Strategy.BASIC.value, Strategy.RECENT_MENTIONS.value):
        [contents] = await extractor.extract(note, strategy=strategy)
        assert contents.contents == paragraphs(8).strip()


@pytest.mark.asyncio
async def test_single_backlinker_extracts_windows_around_evergreen(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    note = write_note(
        vault,
        "Journal.md",
        "Intro para.\n\nContext para ^ctx\n\nMentions [[Evergreen]] here.\n\nUnrelated tail.\n",
    )

    [contents] = await extractor.extract(
        note, strategy=Strategy.SINGLE_EVERGREEN_REFERRER, evergreen="Evergreen"
    )

    assert contents.contents == "Context para %0001%\n\nMentions [[Evergreen]] here."
    assert [sub.block_reference for sub in contents.substitutions] == ["![[Journal#^ctx]]"]


@pytest.mark.asyncio
async def test_single_backlinker_joins_separate_windows(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    text = "A [[Evergreen]] ^a1\n\nB\n\nC\n\nD\n\nE [[Evergreen]] ^e1\n"
    note = write_note(vault, "Journal.md", text)

    [contents] = await extractor.extract(
        note, strategy=Strategy.SINGLE_EVERGREEN_REFERRER, evergreen="[[Evergreen]]"
    )

    assert contents.contents == "A [[Evergreen]] %0001%\n\nD\n\nE [[Evergreen]] %0002%"
    assert len({sub.template for sub in contents.substitutions}) == 2


@pytest.mark.asyncio
async def test_single_backlinker_requires_evergreen(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    note = write_note(vault, "Journal.md", "text")

    with pytest.raises(ValueError):
        await extractor.extract(note, strategy=Strategy.SINGLE_EVERGREEN_REFERRER)


@pytest.mark.asyncio
async def test_all_backlinkers_extract_one_item_per_referrer(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    evergreen = write_note(vault, "Evergreen.md", "The idea itself.\n")
    write_note(vault, "A.md", "Before.\n\nA links [[Evergreen]].\n", mtime=2000)
    write_note(vault, "notes/B.md", "B links [[Evergreen|the idea]].\n", mtime=1000)
    write_note(vault, "C.md", "No link here.\n")
    write_note(vault, "D.md", "Mentions #Evergreen but is not a backlink.\n")
    vault.rebuild_index()

    results = await extractor.extract(evergreen, strategy=Strategy.ALL_EVERGREEN_REFERRERS)

    assert [item.file for item in results] == ["A", "B"]
    assert results[0].contents == "Before.\n\nA links [[Evergreen]]."
    assert results[1].contents == "B links [[Evergreen|the idea]]."


@pytest.mark.asyncio
async def test_all_backlinkers_with_named_evergreen(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    write_note(vault, "Evergreen.md", "The idea itself.\n")
    hub = write_note(vault, "Hub.md", "Index note.\n")
    write_note(vault, "A.md", "A links [[Evergreen]].\n")
    vault.rebuild_index()

    results = await extractor.extract(
        hub, strategy=Strategy.ALL_EVERGREEN_REFERRERS, evergreen="[[Evergreen]]"
    )

    assert [item.file for item in results] == ["A"]


@pytest.mark.asyncio
async def test_all_backlinkers_with_unknown_evergreen_raises(
    vault: VaultService, extractor: ExtractorDelegator
) -> None:
    hub = write_note(vault, "Hub.md", "Index note.\n")

    with pytest.raises(NoteNotFoundError, match="Missing"):
        await extractor.extract(hub, strategy=Strategy.ALL_EVERGREEN_REFERRERS, evergreen="Missing")
