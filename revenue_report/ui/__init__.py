"""Streamlit dashboard for browsing revenue reports."""
