# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the utils module. This module will allow the application to:

# 1. Pull the executable path out of a service command line

# 2. Find the folder that holds that executable

# 3. Read JSON configuration files

from __future__ import annotations

import json
import ntpath
import re
from pathlib import Path
from typing import Any, Dict, List

### First run of characters ending in ".exe", optionally wrapped in quotes.
### ".exe" has to be followed by a quote, whitespace or the end of the line.
_EXECUTABLE_RE = re.compile(r'"?(?P<path>[^"]*?\.exe)(?=["\s]|$)', re.IGNORECASE)

###########################################################################

"""

Name: extract_executable_path

Function: Find the service binary in a raw command line. Handles quoted paths,

unquoted paths with spaces, trailing arguments and %VAR% references.

Arguments: command_line - the command line the service was registered with

Returns: The executable path, or "" if the command line has no .exe in it

"""

def extract_executable_path(command_line: str | None) -> str:
    ### Nothing to parse, nothing to secure
    if not command_line:
        return ""
    ### Find the first thing that looks like an .exe
    match = _EXECUTABLE_RE.search(command_line)
    ### No .exe anywhere, so there is nothing to secure
    if match is None:
        return ""
    ### Drop any quotes and stray spaces around the path
    path = match.group("path").strip().strip('"').strip()
    ### Kernel-style "\??\" prefixes show up on a few services
    if path.startswith("\\??\\"):
        path = path[4:]
    ### Turn %SystemRoot% and friends into real folders
    return ntpath.expandvars(path)

#$ End extract_executable_path

def parent_folder(path: str) -> str:
    if not path:
        return ""
    ### The folder is everything up to the last backslash
    return ntpath.dirname(path)

###########################################################################

"""

Name: load_json_resource

Function: Load a JSON file from a path and return the parsed data.

Arguments: path - path to the JSON file to load

Returns: Dictionary containing the parsed JSON data

"""

def load_json_resource(path: Path) -> Dict[str, Any]:
    ### Open the file and parse it as JSON
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)

#$ End load_json_resource

###########################################################################

"""

Name: read_config

Function: Read a configuration file from a path. If no path is provided,

return an empty dict. If the file doesn't exist, raise an error.

Arguments: path - optional path to the config file

Returns: Dictionary containing the parsed config data

"""

def read_config(path: Path | None) -> Dict[str, Any]:
    ### No --config given, so run on the defaults
    if path is None:
        return {}
    ### A --config that points nowhere is a mistake, say so
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    config = load_json_resource(path)
    ### A config that isn't a JSON object is useless to us
    if not isinstance(config, dict):
        raise ValueError(f"Config file must hold a JSON object: {path}")
    return config

#$ End read_config

def config_list(config: Dict[str, Any], key: str) -> List[str]:
    ### Missing or null keys count as an empty list
    value = config.get(key) or []
    ### A single string is a one-item list
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]
