"""Core types, errors and helpers shared by the engine and services."""
