"""Polymarket Gamma API - event listing and market normalization."""
