# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 PrefSync Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Dot-path access over nested preference trees.

A tree is a plain mapping of mappings. Paths are dot separated
(e.g. "workingHours.start") and each path resolves to exactly one node.
"""

import copy
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

PATH_SEPARATOR = "."

_MISSING = object()


def split_path(path: str) -> List[str]:
    """
    Split a dot path into its segments.

    Args:
        path: Dot separated path

    Returns:
        List of path segments

    Raises:
        ValueError: If the path is empty or contains an empty segment
    """
    if not isinstance(path, str) or not path:
        raise ValueError(f"Invalid preference path: {path!r}")

    segments = path.split(PATH_SEPARATOR)
    if any(not segment for segment in segments):
        raise ValueError(f"Invalid preference path: {path!r}")
    return segments


def _resolve(tree: Mapping, path: str) -> Any:
    try:
        segments = split_path(path)
    except ValueError:
        return _MISSING

    current: Any = tree
    for segment in segments:
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
        else:
            return _MISSING
    return current


def get_path(tree: Mapping, path: str, default: Any = None) -> Any:
    """
    Get the value stored at a dot path.

    Args:
        tree: Tree to read from
        path: Dot separated path
        default: Value returned when any segment is absent

    Returns:
        The stored value or default
    """
    value = _resolve(tree, path)
    if value is _MISSING:
        return default
    return value


def has_path(tree: Mapping, path: str) -> bool:
    """Return True if every segment of the path exists."""
    return _resolve(tree, path) is not _MISSING


def set_path(tree: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set the value at a dot path, creating intermediate nodes on demand.

    Only the nodes along the path are touched; sibling keys keep their
    values. An intermediate node that is not a mapping is replaced by an
    empty mapping.

    Args:
        tree: Tree to modify in place
        path: Dot separated path
        value: Value to store at the leaf
    """
    segments = split_path(path)
    node = tree

    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child

    node[segments[-1]] = value


def clone_tree(value: Any) -> Any:
    """Return a deep copy of supported container types."""
    if isinstance(value, Mapping):
        return {key: clone_tree(sub_value) for key, sub_value in value.items()}
    if isinstance(value, (list, tuple)):
        return [clone_tree(item) for item in value]
    return copy.deepcopy(value)


def merge_over(
    base: Mapping, override: Mapping, schema: Optional[Mapping] = None
) -> Dict[str, Any]:
    """
    Merge ``override`` over ``base`` without mutating either input.

    Override values win key by key. Keys whose schema value is a non-empty
    mapping are schema groups and merge recursively, so a partial group
    keeps the base values of its other members. Every other value,
    including ad-hoc mappings such as filter criteria, is replaced whole.

    Args:
        base: Lower priority tree
        override: Higher priority tree
        schema: Default schema used to recognise groups

    Returns:
        New merged tree
    """
    schema = schema or {}
    result: Dict[str, Any] = {key: clone_tree(value) for key, value in base.items()}

    for key, override_value in override.items():
        group_schema = schema.get(key)
        base_value = result.get(key)
        if (
            isinstance(group_schema, Mapping)
            and group_schema
            and isinstance(base_value, dict)
            and isinstance(override_value, Mapping)
        ):
            result[key] = merge_over(base_value, override_value, group_schema)
        else:
            result[key] = clone_tree(override_value)

    return result
