from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from enzyme.src.models.extraction import FileContents, SourceDescriptor, Strategy
from enzyme.src.models.note import NoteFile
from enzyme.src.services.config import AppConfig
from enzyme.src.services.errors import NoteNotFoundError
from enzyme.src.services.extractors import ExtractorDelegator
from enzyme.src.services.query_engine import QueryEngine
from enzyme.src.services.retriever import CandidateRetriever, default_query
from enzyme.src.services.vault import VaultService


def _contents(file: NoteFile) -> list:
    return [FileContents(file=file.basename, last_modified_date="2024-01-01", contents=file.path)]


@pytest.fixture
def mocked_retriever():
    vault = MagicMock()
    vault.resolve_path.side_effect = lambda path: NoteFile(path=path)
    extractor = MagicMock()
    extractor.extract = AsyncMock(side_effect=lambda file, *args: _contents(file))
    query_engine = MagicMock()
    query_engine.query = AsyncMock(
        return_value=[{"path": "A.md"}, {"path": "B.md"}, {"path": "A.md"}, {"path": "C.md"}]
    )
    return CandidateRetriever(vault, extractor, query_engine)


@pytest.mark.asyncio
async def test_retrieve_deduplicates_paths_in_first_occurrence_order(mocked_retriever) -> None:
    results = await mocked_retriever.retrieve(SourceDescriptor(query="LIST FROM #idea"))

    assert [item.file for item in results] == ["A", "B", "C"]
    assert mocked_retriever.extractor.extract.await_count == 3
    mocked_retriever.query_engine.query.assert_awaited_once_with("LIST FROM #idea")


@pytest.mark.asyncio
async def test_retrieve_passes_strategy_and_evergreen(mocked_retriever) -> None:
    source = SourceDescriptor(
        strategy="SingleEvergreenReferrer", query="LIST FROM [[Idea]]", evergreen="Idea"
    )

    await mocked_retriever.retrieve(source)

    first_call = mocked_retriever.extractor.extract.await_args_list[0]
    assert first_call.args[2:] == ("SingleEvergreenReferrer", "Idea")


@pytest.mark.asyncio
async def test_retrieve_drops_unresolvable_paths(mocked_retriever) -> None:
    mocked_retriever.vault.resolve_path.side_effect = (
        lambda path: None if path == "B.md" else NoteFile(path=path)
    )

    results = await mocked_retriever.retrieve(SourceDescriptor(query="LIST"))

    assert [item.file for item in results] == ["A", "C"]


@pytest.mark.asyncio
async def test_retrieve_flattens_multiple_items_per_file(mocked_retriever) -> None:
    mocked_retriever.extractor.extract.side_effect = lambda file, *args: _contents(file) * 2

    results = await mocked_retriever.retrieve(SourceDescriptor(query="LIST"))

    assert [item.file for item in results] == ["A", "A", "B", "B", "C", "C"]


@pytest.mark.asyncio
async def test_get_source_info_returns_paths(mocked_retriever) -> None:
    info = await mocked_retriever.get_source_info("LIST")

    assert info == [{"path": "A.md"}, {"path": "B.md"}, {"path": "A.md"}, {"path": "C.md"}]


def test_default_query_for_strategies() -> None:
    assert default_query(SourceDescriptor(query="LIST FROM #x")) == "LIST FROM #x"
    assert default_query(SourceDescriptor(strategy="LongContent")) == "LIST FROM #book SORT file.mtime DESC LIMIT 3"
    assert default_query(SourceDescriptor(strategy="RecentMentions")) == "LIST SORT file.mtime DESC LIMIT 10"
    assert (
        default_query(SourceDescriptor(strategy=Strategy.SINGLE_EVERGREEN_REFERRER, evergreen="[[Idea]]"))
        == "LIST FROM [[Idea]] SORT file.mtime DESC"
    )
    assert default_query(SourceDescriptor()) == "LIST SORT file.mtime DESC LIMIT 5"


def test_source_descriptor_accepts_dql_key() -> None:
    source = SourceDescriptor.model_validate({"strategy": " Basic ", "dql": "LIST FROM #a"})

    assert source.strategy == "Basic"
    assert source.query == "LIST FROM #a"


@pytest.fixture
def vault(tmp_path: Path) -> VaultService:
    config = AppConfig(vault_path=tmp_path / "vault", index_db_path=tmp_path / "index.db")
    return VaultService(config=config)


@pytest.fixture
def retriever(vault: VaultService) -> CandidateRetriever:
    return CandidateRetriever(vault, ExtractorDelegator(vault), QueryEngine(vault))


def write_note(vault: VaultService, path: str, text: str) -> None:
    target = vault.vault_root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


@pytest.mark.asyncio
async def test_get_node_contents_missing_file_names_path(retriever: CandidateRetriever) -> None:
    with pytest.raises(NoteNotFoundError, match="File not found: Nodes/Missing") as excinfo:
        await retriever.get_node_contents("Nodes/Missing")

    assert excinfo.value.path == "Nodes/Missing"


@pytest.mark.asyncio
async def test_get_node_contents_for_aggregator(vault: VaultService, retriever: CandidateRetriever) -> None:
    write_note(vault, "Agg.md", "---\nrole: aggregator\n---\nCompare the two books.\n")

    assert await retriever.get_node_contents("Agg") == [{"guidance": "Compare the two books."}]


@pytest.mark.asyncio
async def test_get_node_contents_for_source_runs_its_query(
    vault: VaultService, retriever: CandidateRetriever
) -> None:
    write_note(vault, "Ideas/One.md", "#idea First thought.\n")
    write_note(
        vault,
        "Src.md",
        "---\nrole: source\nguidance: Find patterns\n---\n```dataview\nLIST FROM #idea\n```\n",
    )
    vault.rebuild_index()

    result = await retriever.get_node_contents("Src")

    assert result == [{"guidance": "Find patterns", "source_material": "#idea First thought."}]


@pytest.mark.asyncio
async def test_get_node_contents_for_plain_note(vault: VaultService, retriever: CandidateRetriever) -> None:
    write_note(vault, "Plain.md", "Just words.\n")

    assert await retriever.get_node_contents("Plain") == [{"contents": ["Just words.\n"]}]
