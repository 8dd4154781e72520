"""
Prompt builder service - System prompt construction under a character budget.
Pure business logic; headers and abstracts are never cut, only full text is.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence

from ..models.conversation import PaperContext

DEFAULT_CONTEXT_BUDGET = 24000
DEFAULT_LABEL_LENGTH = 30

NO_PAPERS_PROMPT = (
    "You are a helpful research assistant. "
    "The user has not loaded any papers yet."
)

SINGLE_PAPER_INTRO = (
    "You are a helpful research assistant. The user is asking about the "
    "following paper. Answer questions based on its content. Be precise and "
    "cite specific parts when possible."
)

MULTI_PAPER_INTRO = (
    "You are a helpful research assistant. The user is asking about the "
    "following {count} papers. You can compare, contrast, summarize, and "
    "answer questions about them. Reference papers by their title or number."
)

NO_TEXT_SECTION = "\n(No full text available)\n"


@dataclass(frozen=True)
class PaperSection:
    """Rendered blocks for one paper plus the numbers that produced them."""
    header: str
    abstract: str
    text: str
    allotment: int
    text_allotment: int
    omitted: int

    @property
    def truncated(self) -> bool:
        return self.omitted > 0

    def render(self) -> str:
        return self.header + self.abstract + self.text


def truncation_marker(omitted: int) -> str:
    return f"\n\n[... truncated, {omitted} characters omitted ...]"


def truncate_text(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` and note how much was dropped."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + truncation_marker(len(text) - max_chars)


def per_paper_allotment(budget: int, paper_count: int) -> int:
    if paper_count <= 0:
        return budget
    return budget // paper_count


def render_header(paper: PaperContext, index: int) -> str:
    header = f"--- Paper {index} ---\nTitle: {paper.title}\n"
    if paper.authors:
        header += f"Authors: {paper.authors}\n"
    if paper.year:
        header += f"Year: {paper.year}\n"
    if paper.item_type:
        header += f"Type: {paper.item_type}\n"
    return header


def render_abstract(paper: PaperContext) -> str:
    return f"\nAbstract:\n{paper.abstract}\n" if paper.abstract else ""


def build_paper_section(paper: PaperContext, index: int, allotment: int) -> PaperSection:
    header = render_header(paper, index)
    abstract = render_abstract(paper)
    text_allotment = max(0, allotment - len(header) - len(abstract))

    if paper.text:
        omitted = max(0, len(paper.text) - text_allotment)
        text = f"\nFull Text:\n{truncate_text(paper.text, text_allotment)}\n"
    else:
        omitted = 0
        text = NO_TEXT_SECTION

    return PaperSection(
        header=header,
        abstract=abstract,
        text=text,
        allotment=allotment,
        text_allotment=text_allotment,
        omitted=omitted,
    )


def build_paper_sections(papers: Sequence[PaperContext], budget: int) -> List[PaperSection]:
    allotment = per_paper_allotment(budget, len(papers))
    return [build_paper_section(paper, i, allotment) for i, paper in enumerate(papers, 1)]


def build_system_prompt(papers: Sequence[PaperContext], budget: int = DEFAULT_CONTEXT_BUDGET) -> str:
    """Build the system message for a session's current paper list."""
    if not papers:
        return NO_PAPERS_PROMPT

    if len(papers) == 1:
        intro = SINGLE_PAPER_INTRO
    else:
        intro = MULTI_PAPER_INTRO.format(count=len(papers))

    sections = build_paper_sections(papers, budget)
    return intro + "\n\n" + "\n".join(section.render() for section in sections)


def session_label(papers: Sequence[PaperContext], max_length: int = DEFAULT_LABEL_LENGTH) -> str:
    if len(papers) == 1:
        return (papers[0].title or "Untitled")[:max_length]
    return f"{len(papers)} papers"
