import io

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import matplotlib.patheffects as path_effects
import numpy as np


class ChartColors:
    BACKGROUND = "#080F1B"
    TEXT = '#eee8bb'
    GRID = TEXT
    OUTLINE = '#00000a'
    WINDOW = '#1a3366'
    CLOUD = '#9aa7bd'

    # Rating colors: Excellent → Good → Fair → Poor
    EXCELLENT = '#eee8bb'
    GOOD = '#cc8866'
    FAIR = '#775588'
    POOR = '#e07060'


def score_color(score):
    if score >= 80:
        return ChartColors.EXCELLENT
    if score >= 60:
        return ChartColors.GOOD
    if score >= 40:
        return ChartColors.FAIR
    return ChartColors.POOR


def create_night_chart(hours, best_window=None, title=None) -> bytes:
    """Create a bar chart of hourly scores for the night

    Args:
        hours: List of HourlyForecast in time order
        best_window: Optional ImagingWindow to shade behind the bars
        title: Optional chart title

    Returns:
        bytes: PNG image
    """
    if not hours:
        raise ValueError("Cannot chart an empty night")

    fig, ax = plt.subplots(figsize=(12, 4), facecolor=ChartColors.BACKGROUND)
    try:
        ax.set_facecolor(ChartColors.BACKGROUND)

        ax.tick_params(axis='x', colors=ChartColors.TEXT)
        ax.tick_params(axis='y', colors=ChartColors.TEXT)
        for spine in ax.spines.values():
            spine.set_edgecolor(ChartColors.TEXT)

        x = np.arange(len(hours))
        scores = np.array([h.hour_score for h in hours])
        clouds = np.array([h.cloud_cover for h in hours])

        # Non-imageable hours are drawn faded, whatever their score
        alphas = [1.0 if h.is_imageable else 0.35 for h in hours]
        bars = ax.bar(x, scores, width=0.8, color=[score_color(s) for s in scores], edgecolor=ChartColors.OUTLINE)
        for bar, alpha in zip(bars, alphas):
            bar.set_alpha(alpha)

        ax.plot(x, clouds, color=ChartColors.CLOUD, linewidth=1.5, linestyle='--', marker='o', markersize=3,
                label='Cloud cover %')

        if best_window is not None:
            times = [h.local_time for h in hours]
            if best_window.start_hour in times and best_window.end_hour in times:
                start_idx = times.index(best_window.start_hour)
                end_idx = times.index(best_window.end_hour)
                ax.axvspan(start_idx - 0.5, end_idx + 0.5, color=ChartColors.WINDOW, alpha=0.6, zorder=0,
                           label=f'Best window ({best_window.length}h)')

        ax.set_xlim(-0.5, len(hours) - 0.5)
        ax.set_ylim(0, 105)
        ax.set_xticks(x)
        ax.set_xticklabels([h.local_time.strftime('%I %p').lstrip('0') for h in hours],
                           rotation=45, ha='right', fontsize=9)
        ax.set_ylabel('Score', color=ChartColors.TEXT, fontsize=11)
        ax.grid(axis='y', color=ChartColors.GRID, linestyle='-', linewidth=0.5, alpha=0.2)

        text_outline = [path_effects.withStroke(linewidth=2, foreground=ChartColors.OUTLINE)]
        chart_title = title or 'Night Imaging Forecast'
        title_text = ax.set_title(chart_title, fontsize=14, fontweight='bold', color=ChartColors.TEXT)
        title_text.set_path_effects(text_outline)

        legend = ax.legend(loc='upper right', facecolor=ChartColors.BACKGROUND, edgecolor=ChartColors.TEXT,
                           fontsize=9)
        for text in legend.get_texts():
            text.set_color(ChartColors.TEXT)

        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=150, bbox_inches='tight', facecolor=ChartColors.BACKGROUND)
    finally:
        plt.close(fig)
    return buf.getvalue()
