"""Streamlit safety map: pick a point, see its tier and the incidents around it."""

from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd
import plotly.express as px
import pydeck as pdk
import streamlit as st

from safe_city.db import PostgresIncidentRepository
from safe_city.errors import InvalidInput, UpstreamUnavailable
from safe_city.queries import IncidentQueryService, parse_point
from safe_city.safety import TIER_COLORS, TIER_DESCRIPTIONS
from safe_city.settings import load_settings

# --- Page config ---
st.set_page_config(
    page_title="Safe City — Safety Map",
    page_icon="🛡️",
    layout="wide",
    initial_sidebar_state="expanded",
)


def _rgb(hex_color: str) -> list[int]:
    hex_color = hex_color.lstrip("#")
    return [int(hex_color[i:i + 2], 16) for i in (0, 2, 4)]


@st.cache_resource
def get_service() -> IncidentQueryService:
    settings = load_settings()
    return IncidentQueryService(PostgresIncidentRepository(settings.database_url), settings)


def incidents_frame(incidents) -> pd.DataFrame:
    if not incidents:
        return pd.DataFrame(columns=["title", "category", "latitude", "longitude", "timestamp"])
    df = pd.DataFrame([
        {
            "title": i.title,
            "category": i.category,
            "description": i.description,
            "latitude": i.latitude,
            "longitude": i.longitude,
            "timestamp": i.timestamp,
        }
        for i in incidents
    ])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


# --- Sidebar ---
with st.sidebar:
    st.title("🛡️ Safe City")
    st.markdown("---")
    lat = st.number_input("Latitude", value=40.7128, min_value=-90.0, max_value=90.0, format="%.5f")
    lng = st.number_input("Longitude", value=-74.0060, min_value=-180.0, max_value=180.0, format="%.5f")

service = get_service()

try:
    report = service.safety(parse_point(lat, lng))
except InvalidInput as exc:
    st.error(exc.message)
    st.stop()
except UpstreamUnavailable as exc:
    st.error(f"Database connection error: {exc}")
    st.stop()

tier = report.assessment.tier
tier_color = TIER_COLORS[tier]

# --- Header ---
st.title("Safety Analysis")
st.caption(
    f"({lat:.5f}, {lng:.5f}) within {report.radius_m:.0f}m | "
    f"Updated: {datetime.now(timezone.utc):%H:%M:%S UTC}"
)

col1, col2, col3 = st.columns(3)
col1.metric("Safety level", tier.value.upper())
col2.metric("Recent incidents (7 days)", report.assessment.window_incident_count)
col3.metric("All nearby incidents", len(report.nearby))
st.markdown(
    f"<div style='border-left: 4px solid {tier_color}; padding: 8px 12px;'>{TIER_DESCRIPTIONS[tier]}</div>",
    unsafe_allow_html=True,
)

st.markdown("---")

# --- Map ---
df = incidents_frame(report.nearby)
recent_ids = {i.id for i in report.assessment.matched_incidents}

layers = [
    pdk.Layer(
        "ScatterplotLayer",
        data=pd.DataFrame([{"latitude": lat, "longitude": lng}]),
        get_position=["longitude", "latitude"],
        get_radius=report.radius_m,
        get_fill_color=_rgb(tier_color) + [40],
        get_line_color=_rgb(tier_color) + [200],
        stroked=True,
        line_width_min_pixels=2,
    ),
]
if not df.empty:
    df["recent"] = [i.id in recent_ids for i in report.nearby]
    df["color"] = df["recent"].apply(lambda r: [244, 67, 54, 220] if r else [150, 150, 150, 160])
    df["when"] = df["timestamp"].dt.strftime("%Y-%m-%d %H:%M UTC")
    layers.append(pdk.Layer(
        "ScatterplotLayer",
        data=df,
        get_position=["longitude", "latitude"],
        get_radius=25,
        radius_min_pixels=5,
        get_fill_color="color",
        pickable=True,
        auto_highlight=True,
    ))

st.pydeck_chart(pdk.Deck(
    layers=layers,
    initial_view_state=pdk.ViewState(latitude=lat, longitude=lng, zoom=14, pitch=0),
    tooltip={"text": "{category} — {title}\n{when}"},
), height=500)

# --- Breakdown + table ---
if not df.empty:
    chart_col, table_col = st.columns([1, 2])

    with chart_col:
        counts = df["category"].value_counts().reset_index()
        counts.columns = ["Category", "Count"]
        fig = px.bar(
            counts, x="Count", y="Category",
            orientation="h",
            title="Incidents by Category",
            color_discrete_sequence=[tier_color],
            template="plotly_dark",
        )
        fig.update_layout(height=350, margin=dict(t=40, b=30), yaxis=dict(autorange="reversed"))
        st.plotly_chart(fig, use_container_width=True)

    with table_col:
        display_df = df[["category", "title", "when", "recent"]].copy()
        display_df.columns = ["Category", "Title", "Time", "Last 7 days"]
        st.dataframe(display_df, use_container_width=True, height=350)
else:
    st.info("No incidents reported in this area.")
