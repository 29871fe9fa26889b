from __future__ import annotations

from html import escape

from codeshift.conversion.tasks import TaskConfig


def _task_cards(tasks: list[TaskConfig]) -> str:
    cards = [
        f"""
      <button class="tool" type="button" data-kind="{escape(task.kind)}"
              data-source-key="{escape(task.source_key)}" data-output-key="{escape(task.output_key)}">
        <strong>{escape(task.label)}</strong>
        <span>{escape(task.description)}</span>
      </button>"""
        for task in tasks
    ]
    cards.append(
        """
      <div class="tool disabled">
        <strong>New Feature Coming</strong>
        <span>Check back soon for more conversion options!</span>
      </div>"""
    )
    return "".join(cards)


def render_homepage(*, app_name: str, tasks: list[TaskConfig]) -> str:
    title = escape(app_name)
    return f"""
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
  <link rel="preconnect" href="https://fonts.googleapis.com">
  <link rel="preconnect" href="https://fonts.gstatic.com" crossorigin>
  <link href="https://fonts.googleapis.com/css2?family=Space+Grotesk:wght@400;600;700&family=IBM+Plex+Mono:wght@400;500&display=swap" rel="stylesheet">
  <style>
    :root {{
      --bg: #0f172a;
      --panel: #1e293b;
      --ink: #e2e8f0;
      --muted: #94a3b8;
      --line: #334155;
      --accent: #3b82f6;
      --ok: #86efac;
      --err: #fca5a5;
      --note: #d8b4fe;
    }}
    * {{ box-sizing: border-box; }}
    body {{
      margin: 0;
      font-family: "Space Grotesk", sans-serif;
      color: var(--ink);
      background: var(--bg);
      display: grid;
      grid-template-columns: 320px 1fr;
      min-height: 100vh;
    }}
    aside {{
      border-right: 1px solid var(--line);
      padding: 16px;
      display: flex;
      flex-direction: column;
      gap: 12px;
    }}
    main {{
      padding: 20px;
      display: grid;
      gap: 16px;
      align-content: start;
    }}
    .card {{
      background: var(--panel);
      border: 1px solid var(--line);
      border-radius: 12px;
      padding: 12px;
    }}
    .tools {{
      display: grid;
      gap: 12px;
      grid-template-columns: repeat(auto-fit, minmax(240px, 1fr));
    }}
    .tool {{
      text-align: left;
      color: var(--ink);
      background: var(--panel);
      border: 2px solid var(--line);
      border-radius: 12px;
      padding: 16px;
      display: grid;
      gap: 6px;
      cursor: pointer;
      font: inherit;
    }}
    .tool.active {{ border-color: var(--accent); }}
    .tool.disabled {{ opacity: 0.5; cursor: not-allowed; }}
    .tool span {{ color: var(--muted); font-size: 0.9rem; }}
    .workspace {{
      display: grid;
      gap: 16px;
      grid-template-columns: 1fr 1fr;
    }}
    textarea {{
      width: 100%;
      min-height: 320px;
      resize: vertical;
      background: var(--panel);
      color: var(--ink);
      border: 1px solid var(--line);
      border-radius: 10px;
      padding: 12px;
      font-family: "IBM Plex Mono", monospace;
    }}
    button.primary, button.small {{
      border: 0;
      border-radius: 8px;
      color: white;
      background: var(--accent);
      padding: 8px 16px;
      cursor: pointer;
      font: inherit;
    }}
    button.small {{ background: var(--line); padding: 4px 10px; font-size: 0.8rem; }}
    button:disabled {{ opacity: 0.5; cursor: default; }}
    .analysis {{
      font-family: "IBM Plex Mono", monospace;
      font-size: 0.8rem;
      white-space: pre-wrap;
      color: var(--note);
    }}
    .analysis.error {{ color: var(--err); }}
    .result {{ display: grid; gap: 6px; margin-bottom: 10px; }}
    .result .head {{ display: flex; justify-content: space-between; gap: 8px; }}
    .result .source {{ color: #fdba74; font-family: "IBM Plex Mono", monospace; }}
    .result code {{ color: var(--ok); word-break: break-word; }}
    .history-item {{ position: relative; cursor: pointer; }}
    .history-item .kind {{ color: var(--accent); font-size: 0.72rem; text-transform: uppercase; font-weight: 700; }}
    .history-item .preview {{ font-family: "IBM Plex Mono", monospace; font-size: 0.75rem; margin: 4px 0; }}
    .history-item .when {{ color: var(--muted); font-size: 0.68rem; }}
    .history-item .remove {{ position: absolute; top: 6px; right: 8px; background: none; border: 0; color: var(--muted); cursor: pointer; }}
    .status, .empty {{ color: var(--muted); font-size: 0.8rem; text-align: center; }}
    .policy {{ color: var(--muted); font-size: 0.72rem; }}
    .danger {{ background: #7f1d1d; }}
    @media (max-width: 900px) {{
      body {{ grid-template-columns: 1fr; }}
      .workspace {{ grid-template-columns: 1fr; }}
    }}
  </style>
</head>
<body>
  <aside>
    <h2>History</h2>
    <div class="card">
      <label><input type="checkbox" id="keepForever"> Keep History Forever</label>
      <p class="policy">History older than 30 days is auto-deleted. Check the box to prevent deletion.</p>
      <button class="small danger" id="clearAll" type="button">Clear All History</button>
    </div>
    <p class="status" id="status">Connecting...</p>
    <div id="history"></div>
  </aside>

  <main>
    <h1>{title}</h1>
    <section class="tools" id="tools">{_task_cards(tasks)}
    </section>

    <section class="workspace" id="workspace" hidden>
      <form class="card" id="convertForm">
        <label for="input">Input</label>
        <textarea id="input" placeholder=".box {{ color: red; }}"></textarea>
        <button class="primary" id="convertBtn" type="submit" disabled>Convert</button>
      </form>
      <div class="card">
        <div class="result head">
          <span>Output</span>
          <button class="small" id="copyAll" type="button" hidden>Copy All</button>
        </div>
        <p class="analysis" id="analysis"></p>
        <div id="results"><p class="empty">Results appear here.</p></div>
      </div>
    </section>
  </main>

  <script>
    const state = {{ task: null, conversions: [], copyAll: "", loading: false, keepForever: false }};
    const $ = (id) => document.getElementById(id);
    const statusEl = $("status");
    const historyEl = $("history");
    const inputEl = $("input");
    const convertBtn = $("convertBtn");

    function setStatus(text) {{
      statusEl.textContent = text;
      statusEl.hidden = !text;
    }}

    function selectTask(button) {{
      document.querySelectorAll(".tool").forEach((el) => el.classList.remove("active"));
      button.classList.add("active");
      state.task = {{
        kind: button.dataset.kind,
        sourceKey: button.dataset.sourceKey,
        outputKey: button.dataset.outputKey,
      }};
      $("workspace").hidden = false;
      syncButton();
    }}

    function syncButton() {{
      convertBtn.disabled = state.loading || !state.task || !inputEl.value.trim();
      convertBtn.textContent = state.loading ? "Converting..." : "Convert";
    }}

    function renderResults(conversions, analysis) {{
      const results = $("results");
      const analysisEl = $("analysis");
      analysisEl.textContent = analysis || "";
      analysisEl.classList.toggle("error", (analysis || "").startsWith("Error:"));
      results.innerHTML = "";
      state.conversions = conversions;
      $("copyAll").hidden = !conversions.length;
      if (!conversions.length) {{
        results.innerHTML = '<p class="empty">Results appear here.</p>';
        return;
      }}
      const sourceKey = state.task ? state.task.sourceKey : "selector";
      const outputKey = state.task ? state.task.outputKey : "tailwind";
      for (const item of conversions) {{
        const box = document.createElement("article");
        box.className = "result card";
        const head = document.createElement("div");
        head.className = "head";
        const source = document.createElement("span");
        source.className = "source";
        source.textContent = item[sourceKey] || "";
        const copy = document.createElement("button");
        copy.className = "small";
        copy.type = "button";
        copy.textContent = "Copy";
        copy.onclick = () => navigator.clipboard.writeText(item[outputKey] || "");
        head.append(source, copy);
        const code = document.createElement("code");
        code.textContent = item[outputKey] || "";
        box.append(head, code);
        results.appendChild(box);
      }}
    }}

    function renderHistory(items) {{
      historyEl.innerHTML = "";
      if (!items.length && !statusEl.textContent) {{
        historyEl.innerHTML = '<p class="empty">No history yet.</p>';
        return;
      }}
      for (const item of items) {{
        const card = document.createElement("div");
        card.className = "history-item card";
        card.onclick = () => replay(item);
        const remove = document.createElement("button");
        remove.className = "remove";
        remove.title = "Delete this item";
        remove.textContent = "x";
        remove.onclick = async (event) => {{
          event.stopPropagation();
          if (confirm("Delete this item?")) {{
            await fetch(`/api/history/${{encodeURIComponent(item.id)}}`, {{ method: "DELETE" }});
          }}
        }};
        const kind = document.createElement("span");
        kind.className = "kind";
        kind.textContent = item.type;
        const text = document.createElement("p");
        text.className = "preview";
        text.textContent = item.preview;
        const when = document.createElement("span");
        when.className = "when";
        when.textContent = new Date(item.timestamp).toLocaleDateString();
        card.append(remove, kind, text, when);
        historyEl.appendChild(card);
      }}
    }}

    function replay(item) {{
      const button = document.querySelector(`.tool[data-kind="${{item.type}}"]`);
      if (button) selectTask(button);
      inputEl.value = item.input;
      renderResults(item.conversions, item.analysis);
      syncButton();
    }}

    async function convert(event) {{
      event.preventDefault();
      if (!state.task || state.loading) return;
      state.loading = true;
      syncButton();
      try {{
        const response = await fetch(`/api/convert/${{state.task.kind}}`, {{
          method: "POST",
          headers: {{ "Content-Type": "application/json" }},
          body: JSON.stringify({{ input: inputEl.value }}),
        }});
        const data = await response.json();
        state.copyAll = data.copy_all || "";
        renderResults(data.conversions || [], data.analysis || (data.detail ? `Error: ${{data.detail}}` : ""));
      }} catch (err) {{
        renderResults([], `Error: ${{err}}`);
      }} finally {{
        state.loading = false;
        syncButton();
      }}
    }}

    async function loadSettings() {{
      const response = await fetch("/api/settings");
      if (!response.ok) return;
      const data = await response.json();
      state.keepForever = Boolean(data.keepForever);
      $("keepForever").checked = state.keepForever;
    }}

    function listen() {{
      const source = new EventSource("/api/history/stream");
      source.addEventListener("history", (event) => {{
        setStatus("");
        renderHistory(JSON.parse(event.data).items || []);
      }});
      source.addEventListener("error", (event) => {{
        const status = event.data ? JSON.parse(event.data).status : "Database Error: stream";
        setStatus(status);
        renderHistory([]);
        source.close();
      }});
    }}

    async function connect() {{
      setStatus("Attempting anonymous sign-in...");
      try {{
        const response = await fetch("/api/session", {{ method: "POST" }});
        if (!response.ok) throw new Error(`status ${{response.status}}`);
        setStatus("Signed in. Fetching data...");
        await loadSettings();
        listen();
      }} catch (err) {{
        setStatus(`Auth Error: ${{err.message}}`);
      }}
    }}

    document.querySelectorAll(".tool[data-kind]").forEach((button) => {{
      button.addEventListener("click", () => selectTask(button));
    }});
    inputEl.addEventListener("input", syncButton);
    $("convertForm").addEventListener("submit", convert);
    $("copyAll").addEventListener("click", () => navigator.clipboard.writeText(state.copyAll));
    $("keepForever").addEventListener("change", async (event) => {{
      state.keepForever = event.target.checked;
      await fetch("/api/settings", {{
        method: "PUT",
        headers: {{ "Content-Type": "application/json" }},
        body: JSON.stringify({{ keepForever: state.keepForever }}),
      }});
    }});
    $("clearAll").addEventListener("click", async () => {{
      if (confirm("Are you sure? This will delete ALL history items permanently.")) {{
        await fetch("/api/history", {{ method: "DELETE" }});
      }}
    }});

    connect();
  </script>
</body>
</html>
"""
