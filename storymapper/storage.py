"""
Artifact Storage
Serialises crawl results and user stories to the ``site-map.json`` /
``user-stories.json`` documents, writes them under a per-domain directory
tree, and exports story reports as CSV or Word documents.

Layout::

    <output_root>/domains/<host>/crawls/<crawl_id>/site-map.json
                                                  /user-stories.json
                                                  /session.json
    <output_root>/domains/<host>/latest/...        (copy of the newest crawl)
"""

import csv
import json
import logging
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from .models import CrawlResult, PageSummary, UserStory
from .session_manager import CrawlSession

logger = logging.getLogger(__name__)

SITE_MAP_FILE = 'site-map.json'
USER_STORIES_FILE = 'user-stories.json'
SESSION_FILE = 'session.json'


# ---------------------------------------------------------------------------
# JSON codec
# ---------------------------------------------------------------------------

def site_map_to_dict(crawl: CrawlResult) -> dict:
    """Site-map document: pages in visit order, edges as ``{source, targets}``."""
    return {
        'baseUrl': crawl.base_url,
        'pendingUrls': list(crawl.pending_urls),
        'pages': [page.to_dict() for page in crawl.pages.values()],
        'edges': [
            {'source': source, 'targets': list(targets)}
            for source, targets in crawl.edges.items()
        ],
        'stats': dict(crawl.stats),
    }


def crawl_result_from_dict(data: Mapping[str, Any]) -> CrawlResult:
    """Rebuild a ``CrawlResult`` from a site-map document."""
    pages: Dict[str, PageSummary] = {}
    for entry in data.get('pages', []):
        page = PageSummary.from_dict(entry)
        pages[page.url] = page

    edges: Dict[str, List[str]] = {}
    for entry in data.get('edges', []):
        edges[entry['source']] = list(entry.get('targets', []))

    return CrawlResult(
        base_url=data['baseUrl'],
        pages=pages,
        edges=edges,
        pending_urls=tuple(data.get('pendingUrls', [])),
        stats=dict(data.get('stats', {})),
    )


def stories_to_list(stories: Iterable[UserStory]) -> List[dict]:
    return [story.to_dict() for story in stories]


def stories_from_list(data: Iterable[Mapping[str, Any]]) -> List[UserStory]:
    return [UserStory.from_dict(entry) for entry in data]


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write('\n')


def _read_json(path) -> Any:
    with open(Path(path), 'r', encoding='utf-8') as f:
        return json.load(f)


def load_site_map(path) -> CrawlResult:
    """Load a ``site-map.json`` file (or a crawl directory containing one)."""
    path = Path(path)
    if path.is_dir():
        path = path / SITE_MAP_FILE
    return crawl_result_from_dict(_read_json(path))


def load_user_stories(path) -> List[UserStory]:
    """Load a ``user-stories.json`` file (or a crawl directory containing one)."""
    path = Path(path)
    if path.is_dir():
        path = path / USER_STORIES_FILE
    return stories_from_list(_read_json(path))


# ---------------------------------------------------------------------------
# Directory layout
# ---------------------------------------------------------------------------

def domain_of(url: str) -> str:
    """Host name used as the per-domain directory name."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    return (host or 'unknown-domain').lower()


def _new_crawl_id() -> str:
    return f"crawl-{int(time.time() * 1000)}"


def _session_snapshot(crawl: CrawlResult, crawl_id: str, session: Optional[CrawlSession]) -> dict:
    if session is not None:
        return session.to_dict()
    timestamp = datetime.now(timezone.utc).isoformat()
    return {
        'id': crawl_id,
        'url': crawl.base_url,
        'status': 'completed',
        'createdAt': timestamp,
        'completedAt': timestamp,
    }


def write_artifacts(
    crawl: CrawlResult,
    stories: Sequence[UserStory],
    output_root,
    crawl_id: Optional[str] = None,
    session: Optional[CrawlSession] = None,
) -> Path:
    """
    Persist a crawl and its stories, then refresh the domain's ``latest`` copy.

    Args:
        crawl: Finished crawl
        stories: Stories inferred from it
        output_root: Root output directory
        crawl_id: Directory name of this crawl (generated when omitted)
        session: Session record to snapshot into ``session.json``

    Returns:
        The crawl directory
    """
    crawl_id = crawl_id or (session.id if session is not None else _new_crawl_id())
    domain_root = Path(output_root) / 'domains' / domain_of(crawl.base_url)
    crawl_dir = domain_root / 'crawls' / crawl_id
    latest_dir = domain_root / 'latest'

    crawl_dir.mkdir(parents=True, exist_ok=True)
    _write_json(crawl_dir / SITE_MAP_FILE, site_map_to_dict(crawl))
    _write_json(crawl_dir / USER_STORIES_FILE, stories_to_list(stories))
    _write_json(crawl_dir / SESSION_FILE, _session_snapshot(crawl, crawl_id, session))

    if latest_dir.exists():
        shutil.rmtree(latest_dir)
    shutil.copytree(crawl_dir, latest_dir)

    logger.info(f"[EXPORT] Artifacts saved to {crawl_dir.absolute()}")
    return crawl_dir


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

CSV_FIELDS = [
    'id', 'kind', 'title', 'entry_url', 'description', 'suggested_script_name',
    'primary_cta_label', 'expected_outcome', 'supporting_pages', 'baseline_assertions',
    'repeatability_notes', 'verification_status',
]


def _flat_story(story: UserStory) -> dict:
    """Convert to flat dictionary for CSV export."""
    return {
        'id': story.id,
        'kind': story.kind.value,
        'title': story.title,
        'entry_url': story.entry_url,
        'description': story.description,
        'suggested_script_name': story.suggested_script_name,
        'primary_cta_label': story.primary_cta_label or '',
        'expected_outcome': story.expected_outcome,
        'supporting_pages': ' | '.join(story.supporting_pages),
        'baseline_assertions': ' | '.join(story.baseline_assertions),
        'repeatability_notes': ' | '.join(story.repeatability_notes),
        'verification_status': story.verification_status,
    }


def export_stories_csv(stories: Sequence[UserStory], filepath) -> str:
    """
    Export user stories to CSV.

    Returns:
        Absolute path to the created file
    """
    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction='ignore')
        writer.writeheader()
        for story in stories:
            writer.writerow(_flat_story(story))

    logger.info(f"[EXPORT] Exported CSV to {output_path.absolute()}")
    return str(output_path.absolute())


def export_stories_docx(stories: Sequence[UserStory], crawl: CrawlResult, filepath) -> str:
    """
    Export user stories to a formatted Word document: a summary table,
    then one section per story with its description, assertions and
    step outline.

    Returns:
        Absolute path to the created file
    """
    from docx import Document
    from docx.enum.table import WD_TABLE_ALIGNMENT
    from docx.enum.text import WD_ALIGN_PARAGRAPH
    from docx.shared import Pt, RGBColor

    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = Document()

    # -- Styles ----------------------------------------------------------
    style = doc.styles['Normal']
    style.font.name = 'Calibri'
    style.font.size = Pt(10)
    style.paragraph_format.space_after = Pt(4)

    # -- Cover / Summary -------------------------------------------------
    title = doc.add_heading('User Story Report', level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    summary_items = [
        ('Site', crawl.base_url),
        ('Pages Crawled', str(len(crawl.pages))),
        ('Pending URLs', str(len(crawl.pending_urls))),
        ('Stories', str(len(stories))),
        ('Elapsed Time', f"{crawl.stats.get('elapsed_time', 0)}s"),
    ]
    summary_table = doc.add_table(rows=len(summary_items), cols=2)
    summary_table.alignment = WD_TABLE_ALIGNMENT.CENTER
    for i, (label, value) in enumerate(summary_items):
        row = summary_table.rows[i]
        _cell_text(row.cells[0], label, bold=True, size=Pt(10))
        _cell_text(row.cells[1], value, size=Pt(10))

    doc.add_page_break()

    # -- Per-story sections ---------------------------------------------
    for idx, story in enumerate(stories):
        doc.add_heading(f"[{story.kind.value}] {story.title}"[:120], level=1)

        url_para = doc.add_paragraph()
        url_run = url_para.add_run(story.entry_url)
        url_run.font.color.rgb = RGBColor(0x25, 0x63, 0xEB)
        url_run.font.size = Pt(9)

        doc.add_paragraph(story.description)
        _labelled(doc, 'Script: ', story.suggested_script_name, Pt(9))
        if story.primary_cta_label:
            _labelled(doc, 'Primary CTA: ', story.primary_cta_label, Pt(9))
        _labelled(doc, 'Expected outcome: ', story.expected_outcome, Pt(9))

        for heading, items in (
            ('Baseline assertions', story.baseline_assertions),
            ('Repeatability notes', story.repeatability_notes),
            ('Supporting pages', story.supporting_pages),
        ):
            if items:
                doc.add_heading(heading, level=2)
                for item in items:
                    p = doc.add_paragraph(item, style='List Bullet')
                    for run in p.runs:
                        run.font.size = Pt(9)

        if story.playwright_outline:
            doc.add_heading('Playwright outline', level=2)
            for step in story.playwright_outline:
                p = doc.add_paragraph()
                run = p.add_run(step)
                run.font.name = 'Consolas'
                run.font.size = Pt(8)

        if idx < len(stories) - 1:
            doc.add_page_break()

    doc.save(str(output_path))
    logger.info(f"[EXPORT] Exported DOCX to {output_path.absolute()}")
    return str(output_path.absolute())


def _labelled(doc, label: str, value: str, size) -> None:
    para = doc.add_paragraph()
    label_run = para.add_run(label)
    label_run.bold = True
    label_run.font.size = size
    value_run = para.add_run(value)
    value_run.font.size = size


def _cell_text(cell, text: str, bold: bool = False, size=None) -> None:
    """Set cell text with formatting."""
    cell.text = text
    for paragraph in cell.paragraphs:
        for run in paragraph.runs:
            run.bold = bold
            if size:
                run.font.size = size
