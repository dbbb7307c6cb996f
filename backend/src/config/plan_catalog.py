"""
Plan catalog loader.

Loads plan tiers from config/plans.yml, the single source of truth for the
plans table. seed_plans() upserts them by slug so it is safe to run on every
startup.

Usage:
    from src.config.plan_catalog import load_plan_catalog, seed_plans

    plans = load_plan_catalog()
    seed_plans(session)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy.orm import Session

from src.models.plan import Plan

logger = logging.getLogger(__name__)

_PLAN_FIELDS = ("name", "description", "price_cents", "external_price_id", "is_active", "features")


def _resolve_path(config_path: Optional[str] = None) -> Path:
    if config_path:
        return Path(config_path)

    env_path = os.getenv("PLAN_CATALOG_PATH")
    if env_path:
        return Path(env_path)

    return Path(__file__).parent / "plans.yml"


def load_plan_catalog(config_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read plan definitions from YAML.

    Raises:
        FileNotFoundError: Catalog file missing
        ValueError: A plan entry has no slug or name
    """
    path = _resolve_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"plans.yml not found at {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}

    plans = raw.get("plans", [])
    for entry in plans:
        if not entry.get("slug") or not entry.get("name"):
            raise ValueError(f"Plan entry missing slug or name: {entry}")

    logger.info("Loaded plan catalog from %s (%d plans)", path, len(plans))
    return plans


def seed_plans(session: Session, config_path: Optional[str] = None) -> List[Plan]:
    """
    Upsert every catalog plan by slug and commit.

    Returns:
        The Plan rows in catalog order
    """
    seeded = []
    for entry in load_plan_catalog(config_path):
        plan = session.query(Plan).filter(Plan.slug == entry["slug"]).first()
        if plan is None:
            plan = Plan(slug=entry["slug"])
            session.add(plan)
            logger.info("Creating plan", extra={"slug": entry["slug"]})

        for field in _PLAN_FIELDS:
            if field in entry:
                setattr(plan, field, entry[field])
        seeded.append(plan)

    session.commit()
    return seeded
