"""Semeadura fora de banda do store durável (instalação, restauração)."""

from .seed import DEFAULT_EXCLUDE, SeedAction, SeedResult, seed_durable_paths  # noqa: F401
