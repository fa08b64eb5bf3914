"""Scheduled entity helpers."""

from __future__ import annotations

import pathlib
from typing import Any

import yaml

DEFINITION_PATH = pathlib.Path(__file__).with_name("definition.yml")
ENTITY_TYPE = "schedulable_entity"


def load_definition(path: pathlib.Path = DEFINITION_PATH) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text())
    data.setdefault("type", ENTITY_TYPE)
    return data
