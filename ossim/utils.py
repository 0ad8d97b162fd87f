import logging
from os import path
from typing import Any, Dict
from types import ModuleType

import yaml


logger = logging.getLogger(__name__)


def load_resource(filename: str, resource_module: ModuleType) -> str:
    """
    Read a text file shipped next to the given module, e.g. a workflow fixture.
    """
    logger.debug("Loading a resource file %r.%s", resource_module, filename)
    with open(get_resource_path(filename, resource_module), "r", encoding="utf-8") as fd:
        return fd.read()


def get_resource_path(filename: str, resource_module: ModuleType) -> str:
    logger.debug(
        "Obtaining the full path of a resource file %r.%s", resource_module, filename
    )
    return path.join(path.dirname(resource_module.__file__), filename)


def yaml_to_dict(yaml_str: str) -> Dict[str, Any]:
    return yaml.safe_load(yaml_str)


def load_workflow_file(wf_path: str) -> Dict[str, Any]:
    """
    Parse a workflow file into its blueprint dict.

    Raises:
        ValueError: If the file has no top-level "instructions" list.
    """
    logger.debug("Loading workflow %s", wf_path)
    with open(wf_path, "r", encoding="utf-8") as fd:
        blueprint = yaml_to_dict(fd.read())
    if not isinstance(blueprint, dict) or not isinstance(
        blueprint.get("instructions"), list
    ):
        raise ValueError(f"{wf_path} has no 'instructions' list")
    return blueprint
