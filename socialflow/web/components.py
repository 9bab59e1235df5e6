# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

"""HTML fragments shared by every page.

Everything interpolated into markup goes through ``esc`` first; the helpers
here return ready-to-embed strings.
"""

from html import escape
from typing import Callable
from urllib.parse import urlencode

from ..cache import QueryState
from ..schemas import Client, ContentItem, ContentStatus, HealthStatus, LateAccount

# Pages still waiting on a query reload themselves after this many seconds
REFRESH_SECONDS = 2

NAV_ITEMS = [
    ("dashboard", "/", "Dashboard"),
    ("clients", "/clients", "Clients"),
    ("accounts", "/accounts", "Accounts"),
    ("agents", "/agents", "Agents"),
    ("settings", "/settings", "Settings"),
]


def esc(value) -> str:
    return "" if value is None else escape(str(value), quote=True)


LAYOUT_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  {refresh}
  <title>{title} | SocialFlow</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <style>
    :root {{
      --brand: #6366f1;
      --main-bg: #0b1120;
      --surface: rgba(255, 255, 255, 0.04);
      --border: rgba(255, 255, 255, 0.1);
    }}
    body {{ font-family: 'Inter', sans-serif; background-color: var(--main-bg); color: #fff; }}
    .glass {{ background: var(--surface); border: 1px solid var(--border); }}
    .nav-link.active {{ color: var(--brand); border-bottom: 2px solid var(--brand); }}
  </style>
</head>
<body class="min-h-screen">
  <nav class="border-b border-white/5 bg-black/20 sticky top-0 z-50">
    <div class="max-w-7xl mx-auto px-6 h-16 flex justify-between items-center">
      <div class="flex items-center gap-8">
        <a href="/" class="text-lg font-black tracking-tighter">SOCIALFLOW</a>
        <div class="hidden md:flex gap-6">{nav}</div>
      </div>
      <a href="{n8n_url}" target="_blank" rel="noopener" class="text-[10px] font-black uppercase tracking-widest text-slate-400 hover:text-white">Workflow engine</a>
    </div>
  </nav>
  {toast}
  <main class="max-w-7xl mx-auto px-6 py-10 space-y-8">
    {content}
  </main>
  <script>
    setTimeout(() => {{
      const t = document.getElementById('toast');
      if (t) t.remove();
    }}, 5000);
  </script>
</body>
</html>
"""


def layout(title: str, content: str, active: str = "", n8n_url: str = "#", toast: str = "", refresh_url: str | None = None) -> str:
    nav = "".join(
        f'<a href="{href}" class="text-[10px] font-black uppercase tracking-widest nav-link py-5 '
        f'{"active" if name == active else "text-slate-400 hover:text-white"}">{label}</a>'
        for name, href, label in NAV_ITEMS
    )
    return LAYOUT_HTML.format(
        title=esc(title),
        nav=nav,
        n8n_url=esc(n8n_url),
        toast=toast,
        content=content,
        refresh=f'<meta http-equiv="refresh" content="{REFRESH_SECONDS};url={esc(refresh_url)}" />' if refresh_url else "",
    )


def page_header(title: str, subtitle: str = "", actions: str = "") -> str:
    sub = f'<p class="text-slate-400 text-sm">{esc(subtitle)}</p>' if subtitle else ""
    return f"""
    <div class="flex justify-between items-end">
      <div class="space-y-1">
        <h1 class="text-3xl font-black">{esc(title)}</h1>
        {sub}
      </div>
      <div class="flex gap-3">{actions}</div>
    </div>
    """


def notice_toast(notice: str | None, kind: str | None = "success") -> str:
    if not notice:
        return ""
    color = "bg-rose-500/90" if kind == "error" else "bg-emerald-500/90"
    return (
        f'<div id="toast" role="status" class="fixed top-20 right-6 z-50 px-5 py-3 rounded-xl text-sm font-bold {color}">'
        f'{esc(notice)}</div>'
    )


def with_notice(url: str, notice: str, kind: str = "success") -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode({'notice': notice, 'kind': kind})}"


def loading_indicator(label: str = "Loading...") -> str:
    return f"""
    <div data-state="loading" class="glass rounded-2xl p-10 flex items-center justify-center gap-3 text-slate-400">
      <div class="w-4 h-4 rounded-full border-2 border-slate-500 border-t-transparent animate-spin"></div>
      <span class="text-xs font-black uppercase tracking-widest">{esc(label)}</span>
    </div>
    """


def error_alert(message: str | None, retry_url: str | None = None) -> str:
    retry = ""
    if retry_url:
        retry = f'<a href="{esc(retry_url)}" class="px-4 py-2 rounded-lg bg-rose-500/20 text-rose-200 text-xs font-black uppercase">Retry</a>'
    return f"""
    <div data-state="error" role="alert" class="glass rounded-2xl p-6 border-rose-500/30 flex justify-between items-center gap-4">
      <div>
        <div class="text-rose-300 font-black text-sm">Something went wrong</div>
        <div class="text-slate-300 text-sm">{esc(message or "Unknown error")}</div>
      </div>
      {retry}
    </div>
    """


def empty_state(title: str, description: str, action_label: str | None = None, action_url: str | None = None, action_html: str = "") -> str:
    action = action_html
    if action_label and action_url:
        action = f'<a href="{esc(action_url)}" class="inline-block px-8 py-3 bg-indigo-500 rounded-xl font-black text-xs uppercase tracking-widest">{esc(action_label)}</a>'
    return f"""
    <div data-state="empty" class="glass rounded-3xl p-12 text-center space-y-4">
      <h3 class="text-xl font-black">{esc(title)}</h3>
      <p class="text-slate-400 text-sm max-w-md mx-auto">{esc(description)}</p>
      {action}
    </div>
    """


def retry_url(path: str) -> str:
    return f"{path}{'&' if '?' in path else '?'}refetch=1"


def render_state(
    state: QueryState,
    render: Callable,
    path: str,
    is_empty: Callable | None = None,
    empty: str = "",
    loading_label: str = "Loading...",
) -> str:
    """Pick the fragment for a query state: loading, error, empty or data."""
    if state.is_error:
        return error_alert(state.error_message, retry_url(path))
    if state.is_loading and state.data is None:
        return loading_indicator(loading_label)
    if state.status == "idle":
        return empty
    if is_empty is not None and is_empty(state.data):
        return empty
    return render(state.data)


def post_button(action: str, label: str, style: str = "bg-white/10", fields: dict | None = None, confirm: str | None = None) -> str:
    hidden = "".join(
        f'<input type="hidden" name="{esc(k)}" value="{esc(v)}" />'
        for k, values in (fields or {}).items()
        for v in (values if isinstance(values, list) else [values])
    )
    onsubmit = f' onsubmit="return confirm(\'{esc(confirm)}\')"' if confirm else ""
    return (
        f'<form method="post" action="{esc(action)}" class="inline"{onsubmit}>{hidden}'
        f'<button type="submit" class="px-4 py-2 rounded-lg {style} text-[10px] font-black uppercase tracking-widest">{esc(label)}</button>'
        f'</form>'
    )


STATUS_COLORS = {
    ContentStatus.PENDING: "text-slate-400",
    ContentStatus.NEEDS_AI: "text-amber-300",
    ContentStatus.NEEDS_REVIEW: "text-sky-300",
    ContentStatus.APPROVED: "text-emerald-300",
    ContentStatus.SCHEDULED: "text-indigo-300",
    ContentStatus.BLOCKED: "text-rose-300",
    ContentStatus.FAILED: "text-rose-400",
    ContentStatus.REJECTED: "text-rose-300",
    ContentStatus.DELETED: "text-slate-500",
}

HEALTH_COLORS = {
    HealthStatus.HEALTHY: "text-emerald-300",
    HealthStatus.WARNING: "text-amber-300",
    HealthStatus.EXPIRED: "text-rose-400",
}


def status_badge(status: ContentStatus) -> str:
    color = STATUS_COLORS.get(status, "text-slate-400")
    return f'<span class="text-[10px] font-black uppercase tracking-widest {color}">{esc(status.value)}</span>'


def stat_card(label: str, value) -> str:
    return f"""
    <div class="glass rounded-2xl p-6">
      <div class="text-[10px] font-black uppercase tracking-widest text-slate-400">{esc(label)}</div>
      <div class="text-3xl font-black">{esc(value)}</div>
    </div>
    """


def client_card(client: Client) -> str:
    accounts = []
    if client.accounts is not None:
        if client.accounts.instagram:
            accounts.append(f"IG @{client.accounts.instagram.username}")
        if client.accounts.tiktok:
            accounts.append(f"TT @{client.accounts.tiktok.username}")
    return f"""
    <a href="/clients/{esc(client.slug)}" class="glass rounded-2xl p-6 block hover:border-indigo-400/50">
      <div class="font-black">{esc(client.name)}</div>
      <div class="text-xs text-slate-400">{esc(client.type)} · {esc(client.language)} · {esc(client.timezone)}</div>
      <div class="text-xs text-slate-500 mt-2">{esc(", ".join(accounts) or "No linked accounts")}</div>
    </a>
    """


def account_card(account: LateAccount) -> str:
    color = HEALTH_COLORS.get(account.health, "text-slate-400")
    expiry = "No expiry" if account.days_until_expiry is None else (
        "Expired" if account.days_until_expiry < 0 else f"{account.days_until_expiry} days left"
    )
    return f"""
    <div class="glass rounded-2xl p-6 space-y-1" data-health="{esc(account.health.value)}">
      <div class="flex justify-between">
        <span class="font-black">@{esc(account.username)}</span>
        <span class="text-[10px] font-black uppercase {color}">{esc(account.health.value)}</span>
      </div>
      <div class="text-xs text-slate-400">{esc(account.platform)} · {esc(account.late_profile_name or "No profile")}</div>
      <div class="text-xs text-slate-500">{esc(expiry)}</div>
    </div>
    """


PLATFORM_CHOICES = [("ig,tt", "Instagram + TikTok"), ("ig", "Instagram"), ("tt", "TikTok")]


def platforms_form(item: ContentItem, back: str) -> str:
    options = "".join(
        f'<option value="{value}"{" selected" if item.platforms == value else ""}>{label}</option>'
        for value, label in PLATFORM_CHOICES
    )
    return f"""
    <form method="post" action="/items/{item.id}/platforms" class="inline-flex gap-2">
      <input type="hidden" name="next" value="{esc(back)}" />
      <select name="platforms" class="bg-black/30 rounded-lg p-1 text-[10px]">{options}</select>
      <button type="submit" class="px-3 rounded-lg bg-white/10 text-[10px] font-black uppercase">Set</button>
    </form>
    """


def content_item_row(item: ContentItem, back: str, late_url: str | None = None, conversations_url: str | None = None) -> str:
    actions = ""
    if item.id is not None and item.status == ContentStatus.NEEDS_REVIEW:
        actions = (
            post_button(f"/items/{item.id}/approve", "Approve", "bg-emerald-500/20", {"next": back})
            + post_button(f"/items/{item.id}/reject", "Reject", "bg-rose-500/20", {"next": back})
        )
    late_link = ""
    if late_url:
        late_link = f'<a href="{esc(late_url)}" target="_blank" rel="noopener" class="text-xs text-indigo-300">View post</a>'
    history = ""
    if conversations_url and item.id is not None:
        history = f'<a href="{esc(conversations_url)}" class="text-xs text-indigo-300">AI history</a>'
    platforms = platforms_form(item, back) if item.id is not None else ""
    caption_form = ""
    if item.id is not None:
        caption_form = f"""
        <form method="post" action="/items/{item.id}/caption" class="flex gap-2 mt-2">
          <input type="hidden" name="next" value="{esc(back)}" />
          <textarea name="caption_ig" rows="2" class="flex-1 bg-black/30 rounded-lg p-2 text-xs">{esc(item.caption_ig)}</textarea>
          <button type="submit" class="px-3 rounded-lg bg-white/10 text-[10px] font-black uppercase">Save</button>
        </form>
        """
    error = f'<div class="text-xs text-rose-300">{esc(item.error_message)}</div>' if item.error_message else ""
    return f"""
    <div class="glass rounded-2xl p-4 space-y-1" data-item="{esc(item.content_id)}">
      <div class="flex justify-between items-center">
        <div class="text-xs font-black">{esc(item.content_id)} <span class="text-slate-500">{esc(item.media_type)}</span></div>
        <div class="flex gap-2 items-center">{status_badge(item.status)} {late_link} {history} {actions}</div>
      </div>
      <div class="flex justify-between items-center text-xs text-slate-500">
        <span>{esc(item.scheduled_date or "")} {esc(item.scheduled_time or "")}</span>
        {platforms}
      </div>
      {error}
      {caption_form}
    </div>
    """
