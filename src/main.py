"""
SEO/GEO Content Pipeline: Main Entry Point.

Usage:
    python -m src.main generate "keyword research tools" --mode aio --faqs --takeaways
    python -m src.main generate "vegan protein" --links pages.json --entity "USDA" --entity "WHO"
    python -m src.main generate "rust web frameworks" --dry-run
    python -m src.main estimate --length 2000 --outline --faqs
    python -m src.main cluster "running shoes" "trail shoes" "marathon shoes"
    python -m src.main meta article.md "running shoes" --dry-run
    python -m src.main score page.json
"""

from __future__ import annotations

# Load .env before any other imports so no third-party lib (e.g. anthropic/openai) can capture stale env keys
import src.config  # noqa: F401, E402  # ensure load_dotenv runs first

import argparse
import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from src.agents.seo_analyst import SEOAnalyst
from src.config import get_settings
from src.llm_client import LLMClient, LLMClientError, SendOptions
from src.models import (
    AvailablePage,
    GeneratedContent,
    OptimizationMode,
    PageSnapshot,
    PipelineOptions,
    UsageLedger,
)
from src.observability import metrics as obs_metrics
from src.pipeline import ContentPipeline, PipelineStepError
from src.providers.mock import MockBackend

_CUSTOM_THEME = Theme({
    "log.info":    "dim white",
    "log.warning": "bold #f59e0b",
    "log.error":   "bold #dc2626",
    "log.debug":   "dim #64748b",
    "primary":     "#ea580c",
})

console = Console(theme=_CUSTOM_THEME, highlight=False)


# ── Step display names ───────────────────────────────────────────────────────
_STEP_LABELS: dict[str, str] = {
    "outline":               "Outline",
    "article":               "Article",
    "faq":                   "FAQ Generation",
    "internal_links":        "Internal Links",
    "platform_optimization": "Platform Optimization",
    "key_takeaways":         "Key Takeaways",
    "entity_injection":      "Entity Injection",
    "quotability":           "Quotability",
}


class _RichStructlogRenderer:
    """Custom structlog processor that renders log lines via Rich."""

    _SKIP_KEYS = frozenset({"event", "level", "_record"})

    def __call__(self, logger_: object, method: str, event_dict: dict) -> str:  # noqa: ARG002
        event = event_dict.get("event", "")
        level = event_dict.get("level", "info").lower()

        # ── Pipeline step header ─────────────────────────────────────────────
        if event == "pipeline_step_start":
            step = event_dict.get("step", "?")
            label = _STEP_LABELS.get(step, step.replace("_", " ").title())
            console.print(f"  [bold #ea580c]▶[/bold #ea580c] [bold #e2e8f0]{label}[/bold #e2e8f0]")
            raise structlog.DropEvent()

        # ── Outline fallback highlight ───────────────────────────────────────
        if event == "outline_fallback_used":
            console.print(
                f"  [bold #f59e0b]╔══ FALLBACK OUTLINE ══╗[/bold #f59e0b]  "
                f"[#94a3b8]{event_dict.get('keyword', '')}[/#94a3b8]"
            )
            raise structlog.DropEvent()

        kv_parts = []
        for k, v in event_dict.items():
            if k in self._SKIP_KEYS:
                continue
            vs = str(v)
            if len(vs) > 120:
                vs = vs[:117] + "…"
            if "cost" in k or k == "wait_seconds":
                kv_parts.append(f"[#94a3b8]{k}[/#94a3b8]=[#ea580c]{vs}[/#ea580c]")
            else:
                kv_parts.append(f"[#64748b]{k}[/#64748b]=[#94a3b8]{vs}[/#94a3b8]")
        kv_str = "  ".join(kv_parts)

        if level == "warning":
            prefix = "[bold #f59e0b]⚠[/bold #f59e0b]"
            ev_fmt = f"[bold #f59e0b]{event}[/bold #f59e0b]"
        elif level in ("error", "critical"):
            prefix = "[bold #dc2626]✗[/bold #dc2626]"
            ev_fmt = f"[bold #dc2626]{event}[/bold #dc2626]"
        elif level == "debug":
            prefix = "[#64748b]·[/#64748b]"
            ev_fmt = f"[#64748b]{event}[/#64748b]"
        else:
            prefix = "[#ea580c]▪[/#ea580c]"
            ev_fmt = f"[bold #e2e8f0]{event}[/bold #e2e8f0]"

        console.print(f"  {prefix} {ev_fmt}  {kv_str}")
        raise structlog.DropEvent()


_log_level = getattr(logging, get_settings().observability.log_level.upper(), logging.INFO)

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        _RichStructlogRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()


def slugify(keyword: str) -> str:
    """File-safe lowercase slug for output names."""
    slug = re.sub(r"[^a-z0-9]+", "_", keyword.lower()).strip("_")
    return slug or "content"


def _load_pages(path: Optional[str]) -> list[AvailablePage]:
    """Read the tenant's existing pages: a JSON list of {url, title, keywords}."""
    if not path:
        return []
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return [AvailablePage(**p) for p in data]


def render_markdown(content: GeneratedContent) -> str:
    """Final article as markdown with a front-matter style header."""
    parts = [
        "---",
        f"title: {content.title}",
        f"meta_title: {content.meta_title}",
        f"meta_description: {content.meta_description}",
        f"word_count: {content.word_count}",
        f"reading_time: {content.reading_time}",
        "---",
        "",
        content.body.strip(),
    ]
    if content.faqs and "## FAQ" not in content.body:
        parts += ["", "## FAQ", ""]
        for faq in content.faqs:
            parts += [f"### {faq.question}", "", faq.answer, ""]
    if content.internal_links:
        parts += ["", "<!-- Suggested internal links -->"]
        parts += [f"<!-- [{link.anchor}]({link.url}) -->" for link in content.internal_links]
    return "\n".join(parts).rstrip() + "\n"


def _usage_table(ledger: UsageLedger, title: str = "Usage") -> Table:
    table = Table(title=title, border_style="#ea580c", title_style="bold #ea580c")
    table.add_column("Step", style="bold #94a3b8")
    table.add_column("Model", style="#e2e8f0")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("Cost (¢)", justify="right", style="#ea580c")
    for s in ledger.steps:
        table.add_row(s.step, s.model, str(s.input_tokens), str(s.output_tokens), f"{s.cost_cents:.2f}")
    table.add_row(
        "[bold]Total[/bold]",
        "",
        str(ledger.input_tokens),
        str(ledger.output_tokens),
        f"[bold]{ledger.cost_cents:.2f}[/bold]",
    )
    return table


def _write_outputs(out_path: Path, slug: str, content: Optional[GeneratedContent], ledger: UsageLedger) -> None:
    out_path.mkdir(parents=True, exist_ok=True)
    if content is not None:
        (out_path / f"{slug}.md").write_text(render_markdown(content), encoding="utf-8")
    (out_path / f"{slug}_usage.json").write_text(json.dumps(ledger.model_dump(), indent=2), encoding="utf-8")


async def run_generation(
    keyword: str,
    options: PipelineOptions,
    output_dir: str = "outputs",
    dry_run: bool = False,
) -> int:
    """Run the pipeline for one keyword and save results. Returns a process exit code."""
    settings = get_settings()
    if settings.observability.metrics_enabled:
        obs_metrics.start_server(port=settings.observability.metrics_port)

    client = LLMClient(backend=MockBackend()) if dry_run else LLMClient()
    pipeline = ContentPipeline(llm_client=client)
    console.print(
        Panel(
            f"[bold #ea580c]Content Pipeline[/bold #ea580c]\n"
            f"Keyword: [bold #e2e8f0]{keyword}[/bold #e2e8f0]\n"
            f"Mode: [#94a3b8]{options.optimization_mode.value}[/#94a3b8]  ·  "
            f"Tenant: [#94a3b8]{options.tenant_id}[/#94a3b8] ([#64748b]{options.plan}[/#64748b])  ·  "
            f"Backend: [#94a3b8]{client.backend.provider.value}[/#94a3b8]",
            title="[#ea580c] Generate[/#ea580c]",
            border_style="#ea580c",
        )
    )
    if not pipeline.is_ready():
        console.print("[red]No API key configured for the selected provider. Use --dry-run to run offline.[/red]")
        return 2

    out_path = Path(output_dir)
    slug = slugify(keyword)
    start_time = time.time()
    try:
        content = await pipeline.generate(keyword, options=options)
    except PipelineStepError as e:
        console.print(f"[bold #dc2626]Failed at step '{e.step.value}':[/bold #dc2626] {escape(str(e.__cause__ or e))}")
        console.print(_usage_table(e.ledger, title="Usage (failed run)"))
        _write_outputs(out_path, slug, e.partial, e.ledger)
        if e.partial is not None:
            console.print(f"[yellow]Partial article saved to {out_path}/{slug}.md[/yellow]")
        return 1
    finally:
        await client.backend.close()

    elapsed = time.time() - start_time
    _write_outputs(out_path, slug, content, content.usage)

    summary = Table(title="Generation Summary", border_style="#ea580c", title_style="bold #ea580c")
    summary.add_column("Metric", style="bold #94a3b8")
    summary.add_column("Value", justify="right", style="#e2e8f0")
    summary.add_row("Duration", f"{elapsed:.1f}s")
    summary.add_row("Title", content.title)
    summary.add_row("Words", str(content.word_count))
    summary.add_row("Reading time", f"{content.reading_time} min")
    summary.add_row("FAQs", str(len(content.faqs)))
    summary.add_row("Internal links", str(len(content.internal_links)))
    summary.add_row("Fallback outline", "yes" if content.used_fallback_outline else "no")
    console.print(summary)
    console.print(_usage_table(content.usage))
    console.print(f"\n[green]Outputs saved to {out_path}/[/green]")
    return 0


def run_estimate(length: int, outline: bool, faqs: bool, links: bool) -> int:
    try:
        pipeline = ContentPipeline()
    except (LLMClientError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        return 2
    cents = pipeline.estimate_cost(length, include_outline=outline, include_faqs=faqs, include_links=links)
    console.print(
        Panel(
            f"Estimated cost: [bold #ea580c]{cents}¢[/bold #ea580c] "
            f"([#94a3b8]{length} words, backend {pipeline.llm.backend.provider.value}[/#94a3b8])\n"
            "[#64748b]Heuristic estimate (4 chars per token); actual usage is billed per call.[/#64748b]",
            title="[#ea580c] Estimate[/#ea580c]",
            border_style="#ea580c",
        )
    )
    return 0


# ── Standalone SEO operations ────────────────────────────────────────────────


def _read_content(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _to_jsonable(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


# Subcommand -> (analyst, args, options) -> awaitable (value, CallResult)
_ANALYST_OPERATIONS: dict[str, Callable[[SEOAnalyst, argparse.Namespace, SendOptions], Awaitable[tuple]]] = {
    "cluster": lambda a, args, o: a.cluster_keywords(args.keywords, options=o),
    "ideas": lambda a, args, o: a.generate_content_ideas(
        args.topic, existing_titles=args.existing, count=args.count, options=o
    ),
    "analyze": lambda a, args, o: a.analyze_content(_read_content(args.file), args.keyword, options=o),
    "optimize": lambda a, args, o: a.optimize_content(
        _read_content(args.file), args.keyword, args.suggestion, options=o
    ),
    "meta": lambda a, args, o: a.generate_meta(_read_content(args.file), args.keyword, options=o),
    "score": lambda a, args, o: a.quick_score(
        PageSnapshot.model_validate_json(_read_content(args.page)), options=o
    ),
    "plan": lambda a, args, o: a.generate_content_plan(
        args.topic, args.keywords, timeframe_days=args.days, options=o
    ),
    "aio-readiness": lambda a, args, o: a.analyze_aio_readiness(_read_content(args.file), args.keyword, options=o),
}


async def run_analysis(command: str, args: argparse.Namespace, client: Optional[LLMClient] = None) -> int:
    """Run one SEO analyst operation, print or save its result. Returns a process exit code."""
    if client is None:
        client = LLMClient(backend=MockBackend()) if args.dry_run else LLMClient()
    analyst = SEOAnalyst(client)
    if not analyst.is_ready():
        console.print("[red]No API key configured for the selected provider. Use --dry-run to run offline.[/red]")
        return 2

    options = SendOptions(tenant_id=args.tenant, plan=args.plan, spend_limit_cents=args.spend_limit)
    try:
        value, result = await _ANALYST_OPERATIONS[command](analyst, args, options)
    except (LLMClientError, OSError, ValueError) as e:
        # ValueError covers unrecoverable JSON, unknown models and invalid page files
        console.print(f"[bold #dc2626]{command} failed:[/bold #dc2626] {escape(str(e))}")
        return 1
    finally:
        await client.backend.close()

    text = value if isinstance(value, str) else json.dumps(_to_jsonable(value), indent=2)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        console.print(f"[green]Saved to {out}[/green]")
    else:
        console.print(text, markup=False)
    console.print(
        f"[#64748b]{result.model_id}  in={result.input_tokens}  out={result.output_tokens}[/#64748b]  "
        f"[#ea580c]{result.cost_cents:.2f}¢[/#ea580c]"
    )
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="SEO/GEO Content Pipeline")
    sub = parser.add_subparsers(dest="command")

    gen = sub.add_parser("generate", help="Generate an article for a keyword")
    gen.add_argument("keyword", help="Target keyword")
    gen.add_argument(
        "--mode",
        choices=[m.value for m in OptimizationMode],
        default=OptimizationMode.SEO.value,
        help="Optimize for classic search (seo), AI answer engines (aio), or both (balanced)",
    )
    gen.add_argument("--faqs", action="store_true", help="Generate FAQs when the outline has none")
    gen.add_argument(
        "--links",
        metavar="PAGES.json",
        default=None,
        help="JSON list of existing pages ({url, title, keywords}) to suggest internal links to",
    )
    gen.add_argument("--takeaways", action="store_true", help="Prepend a Key Takeaways section")
    gen.add_argument("--entity", action="append", default=[], metavar="E", help="Entity to weave in (repeatable)")
    gen.add_argument("--quotability", action="store_true", help="Rewrite for quotable, citable statements")
    gen.add_argument("--voice", default=None, help="Brand voice description")
    gen.add_argument("--tenant", default=settings.pipeline.default_tenant, help="Tenant id for admission and spend")
    gen.add_argument("--plan", default=settings.pipeline.default_plan, help="Plan tier (starter, pro, pro_plus)")
    gen.add_argument("--spend-limit", type=float, default=None, help="Tenant spend ceiling in cents")
    gen.add_argument("--words", type=int, default=None, help="Target word count")
    gen.add_argument("--output", default="outputs", help="Output dir")
    gen.add_argument("--dry-run", action="store_true", help="Use the offline mock backend (no API calls)")

    est = sub.add_parser("estimate", help="Pre-flight cost estimate")
    est.add_argument("--length", type=int, required=True, help="Expected content length in words")
    est.add_argument("--outline", action="store_true", help="Include the outline step")
    est.add_argument("--faqs", action="store_true", help="Include FAQ generation")
    est.add_argument("--links", action="store_true", help="Include internal link suggestions")

    # Shared flags for the standalone SEO operations
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--tenant", default=settings.pipeline.default_tenant, help="Tenant id for admission and spend")
    common.add_argument("--plan", default=settings.pipeline.default_plan, help="Plan tier (starter, pro, pro_plus)")
    common.add_argument("--spend-limit", type=float, default=None, help="Tenant spend ceiling in cents")
    common.add_argument("--output", default=None, help="Write the result to this file instead of the console")
    common.add_argument("--dry-run", action="store_true", help="Use the offline mock backend (no API calls)")

    cl = sub.add_parser("cluster", parents=[common], help="Group keywords into topic clusters")
    cl.add_argument("keywords", nargs="+", help="Keywords to cluster")

    ideas = sub.add_parser("ideas", parents=[common], help="Suggest article ideas for a topic")
    ideas.add_argument("topic", help="Topic or niche")
    ideas.add_argument("--existing", action="append", default=[], metavar="TITLE", help="Existing title (repeatable)")
    ideas.add_argument("--count", type=int, default=10, help="Number of ideas")

    for name, help_text in (
        ("analyze", "Score content against a keyword with prioritized fixes"),
        ("meta", "Write a meta title and description"),
        ("aio-readiness", "Assess how citable content is for AI answer engines"),
    ):
        p = sub.add_parser(name, parents=[common], help=help_text)
        p.add_argument("file", help="Markdown or text file with the content")
        p.add_argument("keyword", help="Target keyword")

    opt = sub.add_parser("optimize", parents=[common], help="Rewrite content to apply suggestions")
    opt.add_argument("file", help="Markdown or text file with the content")
    opt.add_argument("keyword", help="Target keyword")
    opt.add_argument("--suggestion", action="append", default=[], metavar="S", help="Fix to apply (repeatable)")

    score = sub.add_parser("score", parents=[common], help="Quick on-page SEO score")
    score.add_argument("page", help="JSON file with page facts (title, meta_description, h1, headings, word_count)")

    cal = sub.add_parser("plan", parents=[common], help="Build a content calendar for a topic")
    cal.add_argument("topic", help="Topic or niche")
    cal.add_argument("keywords", nargs="+", help="Keywords to cover")
    cal.add_argument("--days", type=int, default=30, help="Timeframe in days")

    args = parser.parse_args(argv)
    if args.command == "generate":
        options = PipelineOptions(
            tenant_id=args.tenant,
            plan=args.plan,
            brand_voice=args.voice,
            target_word_count=args.words,
            generate_faqs=args.faqs,
            suggest_internal_links=bool(args.links),
            available_pages=_load_pages(args.links),
            optimization_mode=OptimizationMode(args.mode),
            add_key_takeaways=args.takeaways,
            entities_to_add=args.entity,
            optimize_quotability=args.quotability,
            spend_limit_cents=args.spend_limit,
        )
        raise SystemExit(asyncio.run(run_generation(args.keyword, options, args.output, args.dry_run)))
    elif args.command == "estimate":
        raise SystemExit(run_estimate(args.length, args.outline, args.faqs, args.links))
    elif args.command in _ANALYST_OPERATIONS:
        raise SystemExit(asyncio.run(run_analysis(args.command, args)))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
