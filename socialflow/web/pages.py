# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import asyncio
from urllib.parse import urlencode

import pydantic
from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api.errors import SocialFlowError, sanitize_error_message
from ..cache import QueryOptions, QueryState, query_keys
from ..config import get_late_post_url
from ..logging_setup import log_event
from ..schemas import (
    AccountsData, AgentInstruction, AgentSettings, AIConversation, ArchivedClient, Batch, BatchStatus, Client,
    ContentItem, ContentItemsOptions, ContentItemsPage, ContentStatus, CreateClientInput,
    DashboardStats, GenerationProgress, HealthStatus, IngestProgress, InstructionScope, Job, ScheduleUpdateItem,
)
from .components import (
    account_card, client_card, content_item_row, empty_state, error_alert, esc,
    layout, notice_toast, page_header, post_button, render_state, retry_url,
    stat_card, with_notice,
)

router = APIRouter()

PAGE_SIZE = 20

BATCH_ACTIONS = {
    "ingest": ("ingest", "Ingest started"),
    "generate": ("generate", "Caption generation started"),
    "schedule": ("schedule", "Scheduling started"),
    "reset": ("reset_batch", "Batch reset"),
}

SCHEDULABLE = (ContentStatus.APPROVED, ContentStatus.SCHEDULED)

# --- helpers ---

async def load(request: Request, options: QueryOptions) -> QueryState:
    """Read one query for a page, honoring ``?refetch=1``."""
    state = request.app.state
    if request.query_params.get("refetch") == "1" and options.enabled:
        state.cache.invalidate(options.key)
    return await state.cache.observe(options, wait=state.settings.view_wait_seconds)


async def load_all(request: Request, *options: QueryOptions) -> list[QueryState]:
    return list(await asyncio.gather(*(load(request, o) for o in options)))


def current_url(request: Request) -> str:
    params = [(k, v) for k, v in request.query_params.multi_items() if k not in ("refetch", "notice", "kind")]
    return request.url.path + (f"?{urlencode(params)}" if params else "")


def render(request: Request, title: str, content: str, active: str = "", states: tuple = ()) -> HTMLResponse:
    refresh_url = current_url(request) if any(s.is_loading for s in states) else None
    toast = notice_toast(request.query_params.get("notice"), request.query_params.get("kind"))
    return HTMLResponse(layout(
        title, content, active,
        n8n_url=request.app.state.settings.n8n_dashboard_url,
        toast=toast,
        refresh_url=refresh_url,
    ))


def safe_next(target: str | None, default: str) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return default


def error_text(e: Exception) -> str:
    return sanitize_error_message(getattr(e, "message", None) or str(e))


def validation_text(e: pydantic.ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


async def mutate(awaitable, success_url: str, success: str, failure_url: str | None = None) -> RedirectResponse:
    """Run a mutation and redirect with a notice describing its outcome."""
    try:
        await awaitable
    except SocialFlowError as e:
        return RedirectResponse(with_notice(failure_url or success_url, error_text(e), "error"), status_code=303)
    return RedirectResponse(with_notice(success_url, success), status_code=303)


# --- dashboard ---

def _stats_html(stats: DashboardStats) -> str:
    c = stats.content_items
    cards = [
        stat_card("Clients", stats.clients),
        stat_card("Batches", stats.batches),
        stat_card("Needs review", c.needs_review),
        stat_card("Needs AI", c.needs_ai),
        stat_card("Approved", c.approved),
        stat_card("Scheduled", c.scheduled),
        stat_card("Failed", c.failed),
        stat_card("Accounts", stats.accounts),
    ]
    return f'<div class="grid grid-cols-2 md:grid-cols-4 gap-4">{"".join(cards)}</div>'


def _health_summary_html(data: AccountsData) -> str:
    counts = {h: 0 for h in HealthStatus}
    for account in data.accounts:
        counts[account.health] += 1
    attention = [a for a in data.accounts if a.health != HealthStatus.HEALTHY]
    rows = "".join(account_card(a) for a in attention)
    return f"""
    <div class="space-y-4">
      <div class="grid grid-cols-3 gap-4">
        {stat_card("Healthy", counts[HealthStatus.HEALTHY])}
        {stat_card("Expiring soon", counts[HealthStatus.WARNING])}
        {stat_card("Expired", counts[HealthStatus.EXPIRED])}
      </div>
      <div class="grid md:grid-cols-3 gap-4">{rows}</div>
    </div>
    """


def _jobs_html(jobs: list[Job]) -> str:
    rows = "".join(
        f'<div class="flex justify-between text-xs py-2 border-b border-white/5">'
        f'<span>{esc(j.workflow or j.id)}</span><span class="text-slate-400">{esc(j.status)}</span>'
        f'<span class="text-slate-500">{esc(j.started_at)}</span></div>'
        for j in jobs[:10]
    )
    return f'<div class="glass rounded-2xl p-6">{rows}</div>'


@router.get("/", response_class=HTMLResponse)
async def dashboard_page(request: Request):
    q = request.app.state.queries
    stats, accounts, jobs = await load_all(request, q.stats(), q.accounts(), q.jobs())
    path = current_url(request)
    n8n_link = (
        f'<a href="{esc(request.app.state.settings.n8n_dashboard_url)}" target="_blank" rel="noopener" '
        f'class="px-6 py-3 bg-white/10 rounded-xl font-black text-[10px] uppercase tracking-widest">Open workflow engine</a>'
    )
    content = page_header("Dashboard", "Content pipeline at a glance", n8n_link)
    content += render_state(stats, _stats_html, path)
    content += '<h2 class="text-xl font-black">Account health</h2>'
    content += render_state(
        accounts, _health_summary_html, path,
        is_empty=lambda d: not d.accounts,
        empty=empty_state("No accounts synced", "Sync accounts to see token health.", "Go to accounts", "/accounts"),
    )
    content += '<h2 class="text-xl font-black">Recent jobs</h2>'
    content += render_state(
        jobs, _jobs_html, path,
        is_empty=lambda d: not d,
        empty=empty_state("No jobs yet", "Workflow runs show up here once a batch is processed."),
    )
    return render(request, "Dashboard", content, "dashboard", (stats, accounts, jobs))


# --- clients ---

@router.get("/clients", response_class=HTMLResponse)
async def clients_page(request: Request):
    q = request.app.state.queries
    (clients,) = await load_all(request, q.clients())
    actions = (
        '<a href="/clients/archived" class="px-4 py-2 rounded-lg bg-white/10 text-[10px] font-black uppercase tracking-widest">Archived</a>'
        '<a href="/clients/new" class="px-4 py-2 rounded-lg bg-indigo-500 text-[10px] font-black uppercase tracking-widest">New client</a>'
    )
    if clients.is_success and clients.data:
        actions += post_button("/clients/delete-all", "Delete all", "bg-rose-500/20", confirm="Delete every client?")

    def _grid(data: list[Client]) -> str:
        return f'<div class="grid md:grid-cols-3 gap-4">{"".join(client_card(c) for c in data)}</div>'

    content = page_header("Clients", "Brands managed by SocialFlow", actions)
    content += render_state(
        clients, _grid, current_url(request),
        is_empty=lambda d: not d,
        empty=empty_state("No clients yet", "Create your first client to start ingesting content.", "Create client", "/clients/new"),
    )
    return render(request, "Clients", content, "clients", (clients,))


CREATE_CLIENT_FORM = """
<form method="post" action="/clients/new" class="glass rounded-3xl p-8 grid md:grid-cols-2 gap-4">
  <label class="text-xs space-y-1">Name<input name="name" value="{name}" required class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1">Slug<input name="slug" value="{slug}" required class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1">Type<input name="type" value="{type}" required class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1">Language<input name="language" value="{language}" required class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1">Timezone<input name="timezone" value="{timezone}" class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1">Late profile id<input name="late_profile_id" value="{late_profile_id}" class="w-full bg-black/30 rounded-lg p-2" /></label>
  <label class="text-xs space-y-1 md:col-span-2">Brand voice<textarea name="brand_voice" rows="3" class="w-full bg-black/30 rounded-lg p-2">{brand_voice}</textarea></label>
  <div class="md:col-span-2"><button type="submit" class="px-8 py-3 bg-indigo-500 rounded-xl font-black text-xs uppercase tracking-widest">Create client</button></div>
</form>
"""


def _create_form(values: dict, default_timezone: str) -> str:
    fields = ["name", "slug", "type", "language", "timezone", "late_profile_id", "brand_voice"]
    filled = {f: esc(values.get(f) or "") for f in fields}
    filled["timezone"] = filled["timezone"] or esc(default_timezone)
    filled["type"] = filled["type"] or "restaurant"
    return CREATE_CLIENT_FORM.format(**filled)


@router.get("/clients/new", response_class=HTMLResponse)
async def create_client_page(request: Request):
    content = page_header("New client") + _create_form({}, request.app.state.settings.default_timezone)
    return render(request, "New client", content, "clients")


@router.post("/clients/new")
async def create_client_submit(
    request: Request,
    name: str = Form(""),
    slug: str = Form(""),
    type: str = Form("restaurant"),
    language: str = Form(""),
    timezone: str = Form(""),
    late_profile_id: str = Form(""),
    brand_voice: str = Form(""),
):
    values = {
        "name": name, "slug": slug, "type": type, "language": language,
        "timezone": timezone or request.app.state.settings.default_timezone,
        "late_profile_id": late_profile_id or None, "brand_voice": brand_voice or None,
    }
    try:
        payload = CreateClientInput(**values)
        await request.app.state.mutations.create_client(payload)
    except pydantic.ValidationError as e:
        message = validation_text(e)
    except SocialFlowError as e:
        message = error_text(e)
    else:
        return RedirectResponse(with_notice(f"/clients/{payload.slug}", "Client created"), status_code=303)

    content = page_header("New client") + error_alert(message) + _create_form(values, request.app.state.settings.default_timezone)
    return HTMLResponse(
        layout("New client", content, "clients", n8n_url=request.app.state.settings.n8n_dashboard_url),
        status_code=400,
    )


@router.post("/clients/delete-all")
async def delete_all_clients(request: Request):
    return await mutate(request.app.state.mutations.delete_all_clients(), "/clients", "All clients deleted")


@router.get("/clients/archived", response_class=HTMLResponse)
async def archived_clients_page(request: Request):
    q = request.app.state.queries
    (archived,) = await load_all(request, q.archived_clients())

    def _list(data: list[ArchivedClient]) -> str:
        rows = "".join(
            f'<div class="glass rounded-2xl p-4 flex justify-between items-center">'
            f'<div><div class="font-black">{esc(a.name)}</div><div class="text-xs text-slate-500">{esc(a.slug)} · archived {esc(a.archived_at or "")}</div></div>'
            f'<div class="flex gap-2">'
            f'{post_button(f"/clients/archived/{a.id}/restore", "Restore")}'
            f'{post_button(f"/clients/archived/{a.id}/delete", "Delete", "bg-rose-500/20", confirm="Delete permanently?")}'
            f'</div></div>'
            for a in data
        )
        return f'<div class="space-y-3">{rows}</div>'

    content = page_header("Archived clients")
    content += render_state(
        archived, _list, current_url(request),
        is_empty=lambda d: not d,
        empty=empty_state("No archived clients", "Archived clients can be restored from here.", "Back to clients", "/clients"),
    )
    return render(request, "Archived clients", content, "clients", (archived,))


@router.post("/clients/archived/{client_id}/restore")
async def restore_client(request: Request, client_id: int):
    return await mutate(request.app.state.mutations.restore_client(client_id), "/clients/archived", "Client restored")


@router.post("/clients/archived/{client_id}/delete")
async def delete_archived_client(request: Request, client_id: int):
    return await mutate(request.app.state.mutations.delete_archived_client(client_id), "/clients/archived", "Archived client deleted")


def _batches_html(slug: str, batches: list[Batch]) -> str:
    rows = "".join(
        f'<a href="/clients/{esc(slug)}/batches/{esc(b.slug)}" class="glass rounded-2xl p-4 flex justify-between items-center hover:border-indigo-400/50">'
        f'<div><div class="font-black">{esc(b.name)}</div>'
        f'<div class="text-xs text-slate-500">{b.photo_count} photos · {b.video_count} videos · {b.item_count} items</div></div>'
        f'<div class="text-xs text-slate-400">{b.needs_review} to review · {b.approved} approved · {b.scheduled} scheduled</div>'
        f'</a>'
        for b in batches
    )
    return f'<div class="space-y-3">{rows}</div>'


@router.get("/clients/{slug}", response_class=HTMLResponse)
async def client_detail_page(request: Request, slug: str):
    q = request.app.state.queries
    client, batches = await load_all(request, q.client_detail(slug), q.batches(slug))
    path = current_url(request)

    title = client.data.name if client.is_success else slug
    actions = (
        post_button(f"/clients/{slug}/archive", "Archive")
        + post_button(f"/clients/{slug}/delete", "Delete", "bg-rose-500/20", confirm="Delete this client and all its content?")
    )
    content = page_header(title, slug, actions)

    def _client_html(c: Client) -> str:
        schedule = c.schedule
        times = ""
        if schedule is not None:
            times = f"Feed {esc(schedule.feed_time or '-')} · Story {esc(schedule.story_time or '-')}"
        return (
            f'<div class="glass rounded-2xl p-6 text-sm space-y-1">'
            f'<div>{esc(c.type)} · {esc(c.language)} · {esc(c.timezone)}</div>'
            f'<div class="text-slate-400">{times}</div>'
            f'<div class="text-slate-400">{esc(c.brand_voice or "")}</div>'
            f'<form method="post" action="/clients/{esc(c.slug)}/generate-config" class="flex gap-2 pt-3">'
            f'<input name="notes" placeholder="Onboarding notes for the config agent" class="flex-1 bg-black/30 rounded-lg p-2 text-xs" />'
            f'<button type="submit" class="px-3 rounded-lg bg-white/10 text-[10px] font-black uppercase">Generate config</button>'
            f'</form></div>'
        )

    content += render_state(client, _client_html, path)
    content += '<h2 class="text-xl font-black">Batches</h2>'
    content += render_state(
        batches, lambda data: _batches_html(slug, data), path,
        is_empty=lambda d: not d,
        empty=empty_state(
            "No batches yet",
            "Drop a batch folder into this client's directory, then refresh.",
            "Refresh", retry_url(path),
        ),
    )
    return render(request, title, content, "clients", (client, batches))


@router.post("/clients/{slug}/delete")
async def delete_client(request: Request, slug: str):
    return await mutate(
        request.app.state.mutations.delete_client(slug), "/clients", "Client deleted", failure_url=f"/clients/{slug}"
    )


@router.post("/clients/{slug}/archive")
async def archive_client(request: Request, slug: str):
    return await mutate(
        request.app.state.mutations.archive_client(slug), "/clients", "Client archived", failure_url=f"/clients/{slug}"
    )


@router.post("/clients/{slug}/generate-config")
async def generate_client_config(request: Request, slug: str, notes: str = Form("")):
    return await mutate(
        request.app.state.mutations.generate_client_config(slug, {"notes": notes}),
        f"/clients/{slug}", "Config generation started",
    )


# --- batches ---

def _parse_status(value: str | None) -> ContentStatus | None:
    try:
        return ContentStatus(value) if value else None
    except ValueError:
        return None


def _counts_html(status: BatchStatus) -> str:
    c = status.counts
    cards = [
        stat_card("Total", c.total), stat_card("Pending", c.pending), stat_card("Needs AI", c.needs_ai),
        stat_card("Needs review", c.needs_review), stat_card("Approved", c.approved),
        stat_card("Scheduled", c.scheduled), stat_card("Failed", c.failed),
    ]
    return f'<div class="grid grid-cols-2 md:grid-cols-7 gap-3">{"".join(cards)}</div>'


def _progress_html(label: str, progress: GenerationProgress | IngestProgress) -> str:
    if not progress.is_running and not progress.total:
        return ""
    detail = progress.stage or ""
    if isinstance(progress, IngestProgress) and progress.file_name:
        detail = f"{detail} {progress.file_name}"
    return (
        f'<div class="glass rounded-2xl p-4 text-xs" data-progress="{esc(label.lower())}">{esc(label)}: '
        f'{progress.current} / {progress.total} {esc(detail)}</div>'
    )


def _batch_instructions_html(slug: str, batch: str, instructions: list[AgentInstruction], back: str) -> str:
    rows = "".join(
        f'<div class="text-xs py-2 border-b border-white/5"><span class="font-black">{esc(i.agent_type)} · '
        f'{esc(i.instruction_key)}</span> <span class="text-slate-400">{esc(i.instruction_value)}</span></div>'
        for i in instructions
    ) or '<div class="text-xs text-slate-500">No batch instructions yet.</div>'
    return f"""
    <div class="glass rounded-3xl p-6 space-y-3">
      <h2 class="text-sm font-black uppercase tracking-widest">Batch instructions</h2>
      {rows}
      <form method="post" action="/agents/instructions" class="grid md:grid-cols-4 gap-2">
        <input type="hidden" name="scope" value="{InstructionScope.BATCH.value}" />
        <input type="hidden" name="scope_id" value="{esc(slug)}/{esc(batch)}" />
        <input type="hidden" name="next" value="{esc(back)}" />
        <input name="agent_type" value="caption_generator" required class="bg-black/30 rounded-lg p-2 text-xs" />
        <input name="instruction_key" placeholder="Key" required class="bg-black/30 rounded-lg p-2 text-xs" />
        <input name="instruction_value" placeholder="Instruction" required class="bg-black/30 rounded-lg p-2 text-xs" />
        <button type="submit" class="px-4 py-2 bg-indigo-500 rounded-xl font-black text-[10px] uppercase tracking-widest">Save</button>
      </form>
    </div>
    """


def _schedule_form_html(base: str, items: list[ContentItem], back: str, timezone: str) -> str:
    schedulable = [i for i in items if i.id is not None and i.status in SCHEDULABLE]
    if not schedulable:
        return ""
    rows = "".join(
        f'<div class="grid grid-cols-4 gap-2 items-center text-xs">'
        f'<input type="hidden" name="ids" value="{i.id}" />'
        f'<span class="font-black">{esc(i.content_id)}</span>'
        f'<input type="date" name="date_{i.id}" value="{esc(i.scheduled_date or "")}" class="bg-black/30 rounded-lg p-1" />'
        f'<input type="time" name="time_{i.id}" value="{esc(i.scheduled_time or "")}" class="bg-black/30 rounded-lg p-1" />'
        f'<select name="slot_{i.id}" class="bg-black/30 rounded-lg p-1">'
        + "".join(
            f'<option value="{s}"{" selected" if (i.slot or "feed") == s else ""}>{s}</option>' for s in ("feed", "story")
        )
        + "</select></div>"
        for i in schedulable
    )
    return f"""
    <form method="post" action="{esc(base)}/schedule-items" class="glass rounded-3xl p-6 space-y-2" data-form="schedule">
      <h2 class="text-sm font-black uppercase tracking-widest">Schedule</h2>
      <input type="hidden" name="next" value="{esc(back)}" />
      <input type="hidden" name="timezone" value="{esc(timezone)}" />
      {rows}
      <button type="submit" class="px-4 py-2 bg-indigo-500 rounded-xl font-black text-[10px] uppercase tracking-widest">Save schedule</button>
    </form>
    """


@router.get("/clients/{slug}/batches/{batch}", response_class=HTMLResponse)
async def batch_detail_page(request: Request, slug: str, batch: str, status: str | None = None, offset: int = 0):
    q = request.app.state.queries
    settings = request.app.state.settings
    filter_status = _parse_status(status)
    offset = max(offset, 0)
    options = ContentItemsOptions(status=filter_status, limit=PAGE_SIZE, offset=offset)

    batch_status, items, instructions = await load_all(
        request, q.batch_status(slug, batch), q.content_items(slug, batch, options), q.batch_instructions(slug, batch),
    )
    counts = batch_status.data.counts if batch_status.is_success else None
    # Progress is only polled while a workflow can still be running
    generating = counts is not None and counts.needs_ai > 0
    ingesting = counts is not None and (counts.total == 0 or counts.pending > 0)
    progress, ingest = await load_all(
        request,
        q.generation_progress(slug, batch, active=generating),
        q.ingest_progress(slug, batch, active=ingesting),
    )
    path = current_url(request)
    base = f"/clients/{slug}/batches/{batch}"

    actions = "".join(
        post_button(f"{base}/{name}", name.title(), confirm="Reset this batch?" if name == "reset" else None)
        for name in BATCH_ACTIONS
    ) + post_button(f"{base}/brief", "Generate brief")
    content = page_header(batch, slug, actions)
    content += render_state(batch_status, _counts_html, path)
    if ingest.is_success:
        content += _progress_html("Ingesting", ingest.data)
    if progress.is_success:
        content += _progress_html("Generating captions", progress.data)

    tabs = [("All", None)] + [(s.value.replace("_", " ").title(), s) for s in (
        ContentStatus.NEEDS_AI, ContentStatus.NEEDS_REVIEW, ContentStatus.APPROVED,
        ContentStatus.SCHEDULED, ContentStatus.FAILED,
    )]
    content += '<div class="flex gap-4 text-[10px] font-black uppercase tracking-widest">' + "".join(
        f'<a href="{base}{"?status=" + s.value if s else ""}" class="{"text-indigo-300" if s == filter_status else "text-slate-400"}">{label}</a>'
        for label, s in tabs
    ) + "</div>"

    def _items_html(page: ContentItemsPage) -> str:
        rows = "".join(
            content_item_row(
                i, path,
                get_late_post_url(i.late_post_id, settings) if i.late_post_id else None,
                f"{base}/items/{i.id}/conversations",
            )
            for i in page.items
        )
        reviewable = [i.id for i in page.items if i.id is not None and i.status == ContentStatus.NEEDS_REVIEW]
        bulk = ""
        if reviewable:
            bulk = post_button(
                f"{base}/approve-all", f"Approve {len(reviewable)} on this page", "bg-emerald-500/20",
                {"next": path, "ids": reviewable},
            )
        pager = []
        query = {"status": filter_status.value} if filter_status else {}
        if offset > 0:
            pager.append(f'<a href="{base}?{urlencode({**query, "offset": max(offset - PAGE_SIZE, 0)})}">Previous</a>')
        if page.pagination.has_more:
            pager.append(f'<a href="{base}?{urlencode({**query, "offset": offset + PAGE_SIZE})}">Next</a>')
        return (
            f'<div class="space-y-3">{bulk}{rows}</div>'
            f'<div class="flex gap-4 text-xs text-indigo-300">{"".join(pager)}</div>'
            f'<div class="text-xs text-slate-500">{page.pagination.total} items</div>'
            + _schedule_form_html(base, page.items, path, settings.default_timezone)
        )

    content += render_state(
        items, _items_html, path,
        is_empty=lambda d: not d.items,
        empty=empty_state(
            "No content items",
            "Run ingest to pick up the media in this batch.",
            action_html=post_button(f"{base}/ingest", "Run ingest", "bg-indigo-500"),
        ),
    )
    content += render_state(
        instructions, lambda data: _batch_instructions_html(slug, batch, data, path), path,
        loading_label="Loading instructions...",
    )
    return render(request, f"{slug} / {batch}", content, "clients", (batch_status, items, instructions))


@router.post("/clients/{slug}/batches/{batch}/approve-all")
async def approve_batch_items(request: Request, slug: str, batch: str):
    form = await request.form()
    back = safe_next(form.get("next"), f"/clients/{slug}/batches/{batch}")
    ids = form.getlist("ids")
    if not ids:
        return RedirectResponse(with_notice(back, "No items to approve", "error"), status_code=303)
    return await mutate(request.app.state.mutations.approve_batch_items(ids), back, f"Approved {len(ids)} items")


@router.post("/clients/{slug}/batches/{batch}/brief")
async def generate_batch_brief(request: Request, slug: str, batch: str):
    return await mutate(
        request.app.state.mutations.generate_batch_brief(slug, batch),
        f"/clients/{slug}/batches/{batch}", "Brief generation started",
    )


@router.post("/clients/{slug}/batches/{batch}/schedule-items")
async def schedule_batch_items(request: Request, slug: str, batch: str):
    form = await request.form()
    back = safe_next(form.get("next"), f"/clients/{slug}/batches/{batch}")
    items = []
    try:
        for item_id in form.getlist("ids"):
            date, at = form.get(f"date_{item_id}"), form.get(f"time_{item_id}")
            # Rows left blank keep their current schedule
            if not date or not at:
                continue
            items.append(ScheduleUpdateItem(
                id=item_id, scheduled_date=date, scheduled_time=at, slot=form.get(f"slot_{item_id}") or "feed",
            ))
    except pydantic.ValidationError as e:
        return RedirectResponse(with_notice(back, validation_text(e), "error"), status_code=303)
    if not items:
        return RedirectResponse(with_notice(back, "Pick a date and time for at least one item", "error"), status_code=303)
    timezone = form.get("timezone") or request.app.state.settings.default_timezone
    return await mutate(
        request.app.state.mutations.bulk_update_schedule(slug, batch, items, timezone),
        back, f"Schedule saved for {len(items)} items",
    )


def _conversations_html(rows: list[AIConversation]) -> str:
    blocks = []
    session = object()
    for c in rows:
        if c.session_id != session:
            session = c.session_id
            blocks.append(
                f'<div class="text-[10px] font-black uppercase tracking-widest text-slate-500 pt-4">'
                f'Session {esc(session or "unknown")}</div>'
            )
        meta = " · ".join(str(x) for x in (c.agent_type, c.agent_model, c.status) if x)
        body = c.response if c.role == "assistant" else c.prompt
        error = f'<div class="text-rose-300">{esc(c.error_message)}</div>' if c.error_message else ""
        blocks.append(f"""
        <div class="glass rounded-2xl p-4 text-xs space-y-1" data-role="{esc(c.role or "")}">
          <div class="flex justify-between"><span class="font-black">Round {esc(c.round_number)} · {esc(c.role or "")}</span>
          <span class="text-slate-500">{esc(meta)}</span></div>
          <div class="whitespace-pre-wrap text-slate-300">{esc(body or c.response or c.prompt)}</div>
          {error}
        </div>
        """)
    return f'<div class="space-y-3">{"".join(blocks)}</div>'


@router.get("/clients/{slug}/batches/{batch}/items/{item_id}/conversations", response_class=HTMLResponse)
async def item_conversations_page(request: Request, slug: str, batch: str, item_id: int):
    q = request.app.state.queries
    (conversations,) = await load_all(request, q.item_conversations(slug, batch, item_id))
    base = f"/clients/{slug}/batches/{batch}"
    back = f'<a href="{esc(base)}" class="px-4 py-2 rounded-lg bg-white/10 text-[10px] font-black uppercase tracking-widest">Back to batch</a>'
    content = page_header("AI history", f"{slug} / {batch} · item {item_id}", back)
    content += render_state(
        conversations, _conversations_html, current_url(request),
        is_empty=lambda d: not d,
        empty=empty_state("No conversation history", "Generate captions for this item to see the agent rounds.",
                          "Back to batch", base),
        loading_label="Loading conversations...",
    )
    return render(request, "AI history", content, "clients", (conversations,))


@router.post("/clients/{slug}/batches/{batch}/{action}")
async def run_batch_action(request: Request, slug: str, batch: str, action: str):
    if action not in BATCH_ACTIONS:
        raise HTTPException(status_code=404, detail="Unknown batch action")
    method, success = BATCH_ACTIONS[action]
    fn = getattr(request.app.state.mutations, method)
    return await mutate(fn(slug, batch), f"/clients/{slug}/batches/{batch}", success)


# --- items ---

@router.post("/items/{item_id}/approve")
async def approve_item(request: Request, item_id: int, next: str = Form("/")):
    return await mutate(request.app.state.mutations.approve_item(item_id), safe_next(next, "/"), "Item approved")


@router.post("/items/{item_id}/reject")
async def reject_item(request: Request, item_id: int, next: str = Form("/"), reason: str = Form("")):
    return await mutate(
        request.app.state.mutations.reject_item(item_id, reason or None), safe_next(next, "/"), "Item rejected"
    )


@router.post("/items/{item_id}/caption")
async def update_item_caption(request: Request, item_id: int, next: str = Form("/"), caption_ig: str = Form("")):
    return await mutate(
        request.app.state.mutations.update_item_caption(item_id, caption_ig=caption_ig),
        safe_next(next, "/"), "Caption saved",
    )


@router.post("/items/{item_id}/platforms")
async def update_item_platforms(request: Request, item_id: int, next: str = Form("/"), platforms: str = Form("ig,tt")):
    return await mutate(
        request.app.state.mutations.update_item_platforms(item_id, platforms),
        safe_next(next, "/"), "Platforms updated",
    )


# --- accounts ---

@router.get("/accounts", response_class=HTMLResponse)
async def accounts_page(request: Request):
    q = request.app.state.queries
    (accounts,) = await load_all(request, q.accounts())
    sync = post_button("/accounts/sync", "Sync accounts", "bg-indigo-500")

    def _grid(data: AccountsData) -> str:
        synced = f'<div class="text-xs text-slate-500">Last synced {esc(data.synced_at)}</div>' if data.synced_at else ""
        cards = "".join(account_card(a) for a in data.accounts)
        return f'{synced}<div class="grid md:grid-cols-3 gap-4">{cards}</div>'

    content = page_header("Accounts", "Connected social accounts and token health", sync)
    content += render_state(
        accounts, _grid, current_url(request),
        is_empty=lambda d: not d.accounts,
        empty=empty_state("No accounts synced", "Run a sync to pull accounts from the posting service.", action_html=sync),
    )
    return render(request, "Accounts", content, "accounts", (accounts,))


@router.post("/accounts/sync")
async def sync_accounts(request: Request):
    state = request.app.state
    response = await mutate(state.mutations.sync_accounts(), "/accounts", "Account sync started")
    # The sync workflow keeps writing after it answers; look again shortly
    asyncio.get_running_loop().call_later(
        state.settings.sync_refetch_delay, state.cache.invalidate, query_keys.accounts
    )
    return response


# --- settings ---

@router.get("/settings", response_class=HTMLResponse)
async def settings_page(request: Request):
    q = request.app.state.queries
    settings = request.app.state.settings
    (app_settings,) = await load_all(request, q.settings())

    def _form(data) -> str:
        return f"""
        <form method="post" action="/settings" class="glass rounded-3xl p-8 space-y-4">
          <label class="text-xs space-y-1 block">Cloudflare tunnel URL
            <input name="cloudflare_tunnel_url" value="{esc(data.cloudflare_tunnel_url or "")}" class="w-full bg-black/30 rounded-lg p-2" />
          </label>
          <button type="submit" class="px-8 py-3 bg-indigo-500 rounded-xl font-black text-xs uppercase tracking-widest">Save</button>
        </form>
        {post_button("/settings/test-tunnel", "Test tunnel")}
        """

    content = page_header("Settings", f"Webhook: {settings.api_base}")
    content += render_state(app_settings, _form, current_url(request))
    return render(request, "Settings", content, "settings", (app_settings,))


@router.post("/settings")
async def update_settings(request: Request, cloudflare_tunnel_url: str = Form("")):
    url = cloudflare_tunnel_url.strip().rstrip("/")
    if url and not url.startswith("https://"):
        return RedirectResponse(with_notice("/settings", "Tunnel URL must start with https://", "error"), status_code=303)
    return await mutate(
        request.app.state.mutations.update_settings({"cloudflare_tunnel_url": url}), "/settings", "Settings saved"
    )


@router.post("/settings/test-tunnel")
async def test_tunnel(request: Request):
    try:
        result = await asyncio.to_thread(request.app.state.client.test_tunnel_connection)
    except SocialFlowError as e:
        return RedirectResponse(with_notice("/settings", error_text(e), "error"), status_code=303)
    log_event("tunnel_tested", success=result.get("success"), status_code=result.get("status_code"))
    kind = "success" if result.get("success") else "error"
    return RedirectResponse(with_notice("/settings", result.get("message") or "", kind), status_code=303)


# --- agents ---

@router.get("/agents", response_class=HTMLResponse)
async def agents_page(request: Request, client: str | None = None):
    q = request.app.state.queries
    path = current_url(request)
    instructions_query = q.client_instructions(client) if client else q.system_instructions()
    instructions, agent_settings = await load_all(request, instructions_query, q.agent_settings())
    scope = InstructionScope.CLIENT if client else InstructionScope.SYSTEM

    def _instructions_html(data) -> str:
        rows = "".join(
            f'<div class="glass rounded-2xl p-4 text-xs space-y-1">'
            f'<div class="font-black">{esc(i.agent_type)} · {esc(i.instruction_key)}</div>'
            f'<div class="text-slate-400 whitespace-pre-wrap">{esc(i.instruction_value)}</div></div>'
            for i in data
        )
        return f'<div class="space-y-3">{rows}</div>'

    def _settings_html(data: AgentSettings) -> str:
        forms = ""
        for name, cfg in data.agents.items():
            cfg = cfg if isinstance(cfg, dict) else {"model": cfg}
            forms += f"""
            <form method="post" action="/agents/settings" class="glass rounded-2xl p-6 space-y-2" data-agent="{esc(name)}">
              <input type="hidden" name="agent_type" value="{esc(name)}" />
              <input type="hidden" name="next" value="{esc(path)}" />
              <div class="text-xs font-black">{esc(name)}</div>
              <input name="model" value="{esc(cfg.get("model"))}" placeholder="Model" class="w-full bg-black/30 rounded-lg p-2 text-xs" />
              <textarea name="master_prompt" rows="4" placeholder="Master prompt" class="w-full bg-black/30 rounded-lg p-2 text-xs">{esc(cfg.get("master_prompt"))}</textarea>
              <button type="submit" class="px-4 py-2 bg-indigo-500 rounded-xl font-black text-[10px] uppercase tracking-widest">Save agent</button>
            </form>
            """
        return f'<div class="grid md:grid-cols-2 gap-4">{forms}</div>'

    form = f"""
    <form method="post" action="/agents/instructions" class="glass rounded-3xl p-6 grid md:grid-cols-3 gap-3">
      <input type="hidden" name="scope" value="{scope.value}" />
      <input type="hidden" name="scope_id" value="{esc(client or "")}" />
      <input type="hidden" name="next" value="{esc(path)}" />
      <input name="agent_type" placeholder="Agent" required class="bg-black/30 rounded-lg p-2 text-xs" />
      <input name="instruction_key" placeholder="Key" required class="bg-black/30 rounded-lg p-2 text-xs" />
      <textarea name="instruction_value" placeholder="Instruction" required class="bg-black/30 rounded-lg p-2 text-xs"></textarea>
      <button type="submit" class="px-6 py-2 bg-indigo-500 rounded-xl font-black text-[10px] uppercase tracking-widest">Save instruction</button>
    </form>
    """

    subtitle = f"Client {client}" if client else "System-wide instructions"
    content = page_header("Agents", subtitle)
    content += render_state(
        instructions, _instructions_html, path,
        is_empty=lambda d: not d,
        empty=empty_state("No instructions", "Add an instruction below to steer the agents."),
    )
    content += form
    content += '<h2 class="text-xl font-black">Agent models</h2>'
    content += render_state(
        agent_settings, _settings_html, path,
        is_empty=lambda d: not d.agents,
        empty=empty_state("No agent settings", "The workflow engine has not reported any agents yet."),
    )
    return render(request, "Agents", content, "agents", (instructions, agent_settings))


@router.post("/agents/instructions")
async def update_agent_instruction(
    request: Request,
    agent_type: str = Form(...),
    instruction_key: str = Form(...),
    instruction_value: str = Form(...),
    scope: str = Form("system"),
    scope_id: str = Form(""),
    next: str = Form("/agents"),
):
    try:
        parsed = InstructionScope(scope)
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown instruction scope")
    return await mutate(
        request.app.state.mutations.update_agent_instruction(
            agent_type, parsed, instruction_key, instruction_value, scope_id or None
        ),
        safe_next(next, "/agents"), "Instruction saved",
    )


@router.post("/agents/settings")
async def update_agent_settings(
    request: Request,
    agent_type: str = Form(...),
    model: str = Form(""),
    master_prompt: str = Form(""),
    next: str = Form("/agents"),
):
    # Blank fields leave the stored value alone
    return await mutate(
        request.app.state.mutations.update_agent_settings(agent_type, model or None, master_prompt or None),
        safe_next(next, "/agents"), "Agent settings saved",
    )


@router.get("/health")
def health_check():
    return {"status": "ok"}
