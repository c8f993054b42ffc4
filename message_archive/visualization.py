"""
Visualization functions for indexed conversations.

Provides plotting capabilities using plotly. Every function returns the
figure so callers can render it themselves (notebook, API, CLI) and
optionally writes it as a standalone HTML file.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional

import plotly.graph_objects as go  # type: ignore[import-untyped]

from message_archive.models import LinkCategory, LinkRecord, MessageRecord

logger = logging.getLogger(__name__)


def _write(fig: go.Figure, output_file: Optional[str]) -> None:
    if output_file:
        fig.write_html(output_file)
        logger.info(f"Wrote plot to {output_file}")


def plot_activity_over_time(
    messages: List[MessageRecord],
    output_file: Optional[str] = None,
    title: str = "Messages per day",
) -> go.Figure:
    """
    Plot daily message counts, one line per side of the conversation.

    Args:
        messages: Messages to plot (any order).
        output_file: Optional HTML file path to save the plot.
        title: Figure title.

    Returns:
        plotly Figure with traces "Me" and "Them".
    """
    sent: Counter = Counter()
    received: Counter = Counter()
    for m in messages:
        day = datetime.fromtimestamp(m.timestamp, tz=timezone.utc).date()
        (sent if m.is_from_me else received)[day] += 1

    days = sorted(set(sent) | set(received))
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=days, y=[sent[d] for d in days], mode="lines", name="Me"))
    fig.add_trace(go.Scatter(x=days, y=[received[d] for d in days], mode="lines", name="Them"))
    fig.update_layout(title=title, xaxis_title="Day", yaxis_title="Messages")

    logger.info(f"Plotted {len(messages)} messages over {len(days)} days")
    _write(fig, output_file)
    return fig


def plot_link_categories(
    links: List[LinkRecord],
    output_file: Optional[str] = None,
    title: str = "Shared links by category",
) -> go.Figure:
    """
    Plot the number of shared links per category.

    Every category appears on the x axis, including empty ones, in a fixed
    order so figures for different contacts are comparable.

    Args:
        links: Links to count.
        output_file: Optional HTML file path to save the plot.
        title: Figure title.

    Returns:
        plotly Figure with a single bar trace.
    """
    counts = Counter(link.category for link in links)
    categories = list(LinkCategory)

    fig = go.Figure(
        go.Bar(
            x=[c.value for c in categories],
            y=[counts.get(c, 0) for c in categories],
            name="Links",
        )
    )
    fig.update_layout(title=title, xaxis_title="Category", yaxis_title="Links")

    _write(fig, output_file)
    return fig
