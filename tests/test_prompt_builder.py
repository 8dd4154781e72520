import pytest

from local_ai.domain.models.conversation import PaperContext
from local_ai.domain.services.prompt_builder import (
    NO_PAPERS_PROMPT,
    build_paper_sections,
    build_system_prompt,
    render_abstract,
    render_header,
    session_label,
    truncate_text,
    truncation_marker,
)


def _paper(i=1, text="", abstract="", **kw):
    return PaperContext(
        title=kw.get("title", f"Paper title {i}"),
        authors=kw.get("authors", "Ada Lovelace, Alan Turing"),
        year=kw.get("year", "2021"),
        item_type=kw.get("item_type", "journalArticle"),
        abstract=abstract,
        text=text,
    )


def test_no_papers_prompt():
    assert build_system_prompt([]) == NO_PAPERS_PROMPT


def test_single_paper_truncation_matches_budget():
    text = "x" * 29997 + "END"
    assert len(text) == 30000
    paper = _paper(text=text)
    header = render_header(paper, 1)
    allot = 24000 - len(header)

    prompt = build_system_prompt([paper], budget=24000)

    assert header in prompt
    assert "\nFull Text:\n" + text[:allot] + truncation_marker(len(text) - allot) in prompt
    assert f"{len(text) - allot} characters omitted" in prompt
    assert "END" not in prompt
    assert "the following paper." in prompt


def test_short_text_is_not_truncated():
    paper = _paper(text="short body")
    prompt = build_system_prompt([paper], budget=24000)
    assert "short body" in prompt
    assert "truncated" not in prompt


def test_missing_text_and_optional_header_lines():
    paper = PaperContext(title="Only title")
    prompt = build_system_prompt([paper])
    assert "Title: Only title" in prompt
    assert "Authors:" not in prompt
    assert "Year:" not in prompt
    assert "(No full text available)" in prompt


@pytest.mark.parametrize("count", [1, 2, 3, 7])
@pytest.mark.parametrize("budget", [500, 6000, 24000])
def test_text_never_exceeds_allotment_and_marker_iff_truncated(count, budget):
    sizes = [0, 10, 900, 5000, 40000, 123, 24000]
    papers = [
        _paper(i, text="t" * sizes[i % len(sizes)], abstract="a" * (37 * i))
        for i in range(count)
    ]
    sections = build_paper_sections(papers, budget)

    assert len(sections) == count
    for paper, section in zip(papers, sections):
        assert section.allotment == budget // count
        assert section.text_allotment == max(0, section.allotment - len(section.header) - len(section.abstract))
        kept = min(len(paper.text), section.text_allotment)
        assert section.text_allotment >= 0
        if paper.text:
            assert paper.text[:kept] in section.text
            assert ("truncated," in section.text) == (len(paper.text) > section.text_allotment)
            assert section.truncated == (len(paper.text) > section.text_allotment)
            assert section.omitted == max(0, len(paper.text) - section.text_allotment)
        else:
            assert not section.truncated


def test_headers_and_abstracts_are_never_cut():
    long_abstract = "abstract " * 2000
    paper = _paper(title="T" * 500, abstract=long_abstract, text="body " * 100)
    sections = build_paper_sections([paper, paper], budget=1000)
    for section in sections:
        assert section.header == render_header(paper, sections.index(section) + 1)
        assert section.abstract == render_abstract(paper)
        assert section.text_allotment == 0
        assert "500 characters omitted" in section.text


def test_multi_paper_intro_and_numbering():
    prompt = build_system_prompt([_paper(1), _paper(2), _paper(3)])
    assert "following 3 papers" in prompt
    assert "--- Paper 1 ---" in prompt
    assert "--- Paper 3 ---" in prompt


def test_truncate_text():
    assert truncate_text("abc", 3) == "abc"
    assert truncate_text("abcdef", 2) == "ab" + truncation_marker(4)
    assert truncate_text("abc", 0) == truncation_marker(3)


def test_session_label():
    assert session_label([_paper(title="A" * 50)]) == "A" * 30
    assert session_label([PaperContext()]) == "Untitled"
    assert session_label([_paper(1), _paper(2)]) == "2 papers"
    assert session_label([_paper(title="abcdef")], max_length=3) == "abc"
