"""HTML dashboard page for the monitor middleware."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_TITLE = "Fiber Monitor"
DEFAULT_REFRESH = timedelta(seconds=3)
# The page polls again after (refresh - TIMEOUT_DIFF) milliseconds.
TIMEOUT_DIFF = 200
MIN_REFRESH = timedelta(milliseconds=TIMEOUT_DIFF)
DEFAULT_FONT_URL = "https://fonts.googleapis.com/css2?family=Roboto:wght@400;900&display=swap"
DEFAULT_CHART_JS_URL = "https://cdn.jsdelivr.net/npm/chart.js@2.9/dist/Chart.bundle.min.js"
DEFAULT_CUSTOM_HEAD = ""

_STYLE_RULES = (
    ("body", "margin: 0; font: 16px / 1.6 'Roboto', sans-serif;"),
    (".wrapper", "max-width: 900px; margin: 0 auto; padding: 30px 0;"),
    (".title", "text-align: center; margin-bottom: 2em;"),
    (".title h1", "font-size: 1.8em; padding: 0; margin: 0;"),
    (".row", "display: flex; margin-bottom: 20px; align-items: center;"),
    (".row .column:first-child", "width: 35%;"),
    (".row .column:last-child", "width: 65%;"),
    (".metric", "color: #777; font-weight: 900;"),
    ("h2", "padding: 0; margin: 0; font-size: 2.2em;"),
    ("h2 span", "font-size: 12px; color: #777;"),
    ("h2 span.ram_os", "color: rgba(255, 150, 0, .8);"),
    ("h2 span.ram_total", "color: rgba(0, 200, 0, .8);"),
    ("canvas", "width: 200px; height: 180px;"),
)

# (element id prefix, label, initial text, extra attributes of the value heading)
_ROWS = (
    ("cpu", "CPU Usage", "0.00%", ""),
    ("ram", "Memory Usage", "0.00 MB", ' title="PID used / OS used / OS total"'),
    ("rtime", "Response Time", "0ms", ""),
    ("conns", "Open Connections", "0", ""),
)

_SCRIPT = """
const units = ['Bytes', 'KB', 'MB', 'GB', 'TB', 'PB', 'EB', 'ZB', 'YB'];
function formatBytes(bytes) {
  if (bytes === 0) return '0 Bytes';
  const i = Math.floor(Math.log(bytes) / Math.log(1024));
  return parseFloat((bytes / Math.pow(1024, i)).toFixed(1)) + ' ' + units[i];
}
const defaults = Chart.defaults.global;
defaults.legend.display = false;
defaults.defaultFontSize = 8;
Object.assign(defaults.animation, {duration: 1000, easing: 'easeOutQuart'});
Object.assign(defaults.elements.line, {
  backgroundColor: 'rgba(0, 172, 215, 0.25)',
  borderColor: 'rgba(0, 172, 215, 1)',
  borderWidth: 2
});
const chartOptions = {
  scales: {
    yAxes: [{ticks: {beginAtZero: true}}],
    xAxes: [{type: 'time', time: {unitStepSize: 30, unit: 'second'}, gridlines: {display: false}}]
  },
  tooltips: {enabled: false},
  responsive: true,
  maintainAspectRatio: false,
  animation: false
};
const byId = id => document.getElementById(id);
const series = () => ({data: [], lineTension: 0.2, pointRadius: 0});
function makeChart(key) {
  return new Chart(byId(key + 'Chart').getContext('2d'), {
    type: 'line',
    data: {labels: [], datasets: [Object.assign(series(), {label: ''})]},
    options: chartOptions
  });
}
const charts = {
  cpu: makeChart('cpu'),
  ram: makeChart('ram'),
  rtime: makeChart('rtime'),
  conns: makeChart('conns')
};
charts.ram.data.datasets.push(
  Object.assign(series(), {backgroundColor: 'rgba(255, 200, 0, .6)', borderColor: 'rgba(255, 150, 0, .8)'}),
  Object.assign(series(), {backgroundColor: 'rgba(0, 255, 0, .4)', borderColor: 'rgba(0, 200, 0, .8)'})
);
const megabytes = bytes => (bytes / 1e6).toFixed(2);
function update(stats, rtime) {
  const cpu = stats.pid.cpu.toFixed(1);
  byId('cpuMetric').innerHTML = cpu + '% <span>' + stats.os.cpu.toFixed(1) + '%</span>';
  byId('ramMetric').innerHTML = formatBytes(stats.pid.ram)
    + '<span> / </span><span class="ram_os">' + formatBytes(stats.os.ram) + '</span>'
    + '<span> / </span><span class="ram_total">' + formatBytes(stats.os.total_ram) + '</span>';
  byId('rtimeMetric').innerHTML = rtime + 'ms <span>client</span>';
  byId('connsMetric').innerHTML = stats.pid.conns + ' <span>' + stats.os.conns + '</span>';

  charts.cpu.data.datasets[0].data.push(cpu);
  const ram = charts.ram.data.datasets;
  ram[0].data.push(megabytes(stats.pid.ram));
  ram[1].data.push(megabytes(stats.os.ram));
  ram[2].data.push(megabytes(stats.os.total_ram));
  charts.rtime.data.datasets[0].data.push(rtime);
  charts.conns.data.datasets[0].data.push(stats.pid.conns);

  const now = Date.now();
  Object.values(charts).forEach(chart => {
    if (chart.data.labels.length > 50) {
      chart.data.datasets.forEach(set => set.data.shift());
      chart.data.labels.shift();
    }
    chart.data.labels.push(now);
    chart.update();
  });
  setTimeout(fetchJSON, $TIMEOUT)
}
function fetchJSON() {
  const started = performance.now();
  let received = started;
  fetch(window.location.href, {headers: {'Accept': 'application/json'}, credentials: 'same-origin'})
    .then(res => { received = performance.now(); return res.json(); })
    .then(stats => update(stats, Math.round(received - started)))
    .catch(console.error);
}
fetchJSON();
"""


def _style() -> str:
    return "\n".join(f"    {selector} {{ {rules} }}" for selector, rules in _STYLE_RULES)


def _row(key: str, label: str, initial: str, extra: str) -> str:
    return (
        '      <div class="row">\n'
        f'        <div class="column"><div class="metric">{label}</div>'
        f'<h2 id="{key}Metric"{extra}>{initial}</h2></div>\n'
        f'        <div class="column"><canvas id="{key}Chart"></canvas></div>\n'
        "      </div>"
    )


INDEX_HTML = "\n".join(
    [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="UTF-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        '  <link href="$FONT_URL" rel="stylesheet">',
        '  <script src="$CHART_JS_URL"></script>',
        "  <title>$TITLE</title>",
        "  <style>",
        _style(),
        "$CUSTOM_HEAD",
        "  </style>",
        "</head>",
        "<body>",
        '  <section class="wrapper">',
        '    <div class="title"><h1>$TITLE</h1></div>',
        '    <section class="charts">',
        *(_row(*row) for row in _ROWS),
        "    </section>",
        "  </section>",
        "  <script>",
        _SCRIPT,
        "  </script>",
        "</body>",
        "</html>",
        "",
    ]
)

_PLACEHOLDERS = ("$TITLE", "$TIMEOUT", "$FONT_URL", "$CHART_JS_URL", "$CUSTOM_HEAD")
_PLACEHOLDER_RE = re.compile("|".join(re.escape(p) for p in _PLACEHOLDERS))


@dataclass(frozen=True)
class ViewBag:
    """Values substituted into the dashboard page."""

    title: str
    refresh: timedelta
    font_url: str
    chart_js_url: str
    custom_head: str


def new_index(view: ViewBag) -> str:
    """Render the dashboard page for the given view values."""
    timeout = view.refresh // timedelta(milliseconds=1) - TIMEOUT_DIFF
    timeout = max(timeout, TIMEOUT_DIFF)
    values = {
        "$TITLE": view.title,
        "$TIMEOUT": str(timeout),
        "$FONT_URL": view.font_url,
        "$CHART_JS_URL": view.chart_js_url,
        "$CUSTOM_HEAD": view.custom_head,
    }
    # One pass, so substituted text is never scanned again.
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], INDEX_HTML)