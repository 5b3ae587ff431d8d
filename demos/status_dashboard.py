import os
import sys

import pandas as pd
import streamlit as st

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from layersync import sync_flow
from layersync.errors import LayerSyncError
from layersync.file_store import build_file_store
from layersync.merge_engine import SyncAction
from layersync.report import report_rows
from layersync.sync_log import read_events


def install_root() -> str:
    return os.environ.get("AGENT_OS_ROOT") or os.getcwd()


def render_counts(report):
    columns = st.columns(len(SyncAction))
    for column, action in zip(columns, SyncAction):
        with column:
            st.metric(label=action.value, value=report.count(action))


def render_actions(report):
    rows = report_rows(report)
    if not rows:
        st.write("Nothing to install.")
        return
    df = pd.DataFrame(rows)
    actions = sorted(df["action"].unique())
    selected = st.multiselect("Filter by action", actions, default=actions)
    search = st.text_input("Search path", "")
    if selected:
        df = df[df["action"].isin(selected)]
    if search:
        df = df[df["path"].str.contains(search, case=False, regex=False)]
    st.dataframe(df)


def render_history(root: str):
    events = read_events(build_file_store(root))
    if not events:
        st.write("No sync history yet.")
        return
    st.dataframe(pd.DataFrame(events[-50:]).iloc[::-1])


def main():
    st.set_page_config(page_title="Agent OS status", layout="wide")
    st.title("Agent OS status")
    root = st.text_input("Install root", install_root())
    try:
        report = sync_flow.status(root=root)
    except LayerSyncError as exc:
        st.error(exc.message)
        return

    if report.state_recovered:
        st.warning("Install state is unreadable; every existing file is treated as customized.")
    render_counts(report)

    tab_actions, tab_merge, tab_history = st.tabs(["Planned actions", "Needs manual merge", "History"])
    with tab_actions:
        render_actions(report)
    with tab_merge:
        if report.requires_manual_merge:
            st.dataframe(pd.DataFrame({"path": report.requires_manual_merge}))
        else:
            st.success("No customized files need attention.")
    with tab_history:
        render_history(root)


if __name__ == "__main__":
    main()
