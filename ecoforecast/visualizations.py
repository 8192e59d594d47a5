"""
Plotting helpers for ensemble forecasts.
"""

import logging
import os

import pandas as pd
import plotly.graph_objs as go
import plotly.io as pio

logger = logging.getLogger(__name__)


def forecast_summary(forecast, lower_q=0.025, upper_q=0.975):
    """Ensemble mean and quantile band per (site_id, datetime, variable)."""
    grouped = forecast.groupby(["site_id", "datetime", "variable"], sort=True)["prediction"]
    summary = grouped.agg(
        mean="mean",
        lower=lambda s: s.quantile(lower_q),
        upper=lambda s: s.quantile(upper_q),
        n_members="count",
    )
    return summary.reset_index()


def generate_site_forecast_plot(forecast, site_id, observations=None, history_days=120):
    """
    Observed history plus every ensemble member trajectory for one site.

    ``observations`` is a targets table (site_id, datetime, variable,
    observation); only the last *history_days* days before the forecast
    are drawn.
    """
    site_forecast = forecast[forecast["site_id"] == site_id]
    if site_forecast.empty:
        raise ValueError(f"No forecast rows for site {site_id}")
    variable = site_forecast["variable"].iloc[0]

    fig = go.Figure()

    if observations is not None:
        site_obs = observations[
            (observations["site_id"] == site_id) & (observations["variable"] == variable)
        ]
        if not site_obs.empty:
            start = pd.Timestamp(site_forecast["datetime"].min()) - pd.Timedelta(days=history_days)
            site_obs = site_obs[pd.to_datetime(site_obs["datetime"]) >= start]
            fig.add_trace(go.Scatter(
                x=site_obs["datetime"],
                y=site_obs["observation"],
                mode='markers',
                marker=dict(size=5, color='rgb(30, 30, 30)'),
                name='Observed',
            ))

    for i, (member, member_rows) in enumerate(site_forecast.groupby("parameter", sort=True)):
        member_rows = member_rows.sort_values("datetime")
        fig.add_trace(go.Scatter(
            x=member_rows["datetime"],
            y=member_rows["prediction"],
            mode='lines',
            line=dict(color='rgba(70, 130, 180, 0.3)', width=1),
            name='Ensemble members',
            legendgroup='members',
            showlegend=i == 0,
            hovertemplate=f'Member {member}: %{{y:.2f}}<extra></extra>',
        ))

    summary = forecast_summary(site_forecast)
    fig.add_trace(go.Scatter(
        x=summary["datetime"],
        y=summary["mean"],
        mode='lines',
        line=dict(color='rgb(30, 60, 90)', width=3),
        name='Ensemble mean',
    ))

    fig.update_layout(
        title=f"{site_id}: {variable} forecast",
        xaxis_title="Date",
        yaxis_title=variable,
        template="plotly_white",
        hovermode="x unified",
    )
    return fig


def save_forecast_plots(forecast, output_dir, observations=None):
    """Write one HTML plot per forecast site; returns the written paths."""
    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for site_id in forecast["site_id"].unique():
        fig = generate_site_forecast_plot(forecast, site_id, observations=observations)
        path = os.path.join(output_dir, f"{site_id}.html")
        pio.write_html(fig, path, include_plotlyjs="cdn")
        paths.append(path)
    logger.info("Saved %d forecast plots to %s", len(paths), output_dir)
    return paths
