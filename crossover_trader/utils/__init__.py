"""Utility helpers for Crossover Trader."""
