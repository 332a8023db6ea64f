"""
Registry of the modules (repositories) and groups the tooling works with.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Iterable, Union

from .error_handling import ConfigurationError
from .models import Module, Group

logger = logging.getLogger(__name__)

PUBLIC_GROUP = "public"

# Module name -> explicit remote URL; None means build it from the organisation
DEFAULT_MODULES: Dict[str, Optional[str]] = {
    "ensembl": None,
    "ensembl-analysis": None,
    "ensembl-compara": None,
    "ensembl-datacheck": None,
    "ensembl-funcgen": None,
    "ensembl-git-tools": None,
    "ensembl-hive": None,
    "ensembl-io": None,
    "ensembl-metadata": None,
    "ensembl-orm": None,
    "ensembl-pipeline": None,
    "ensembl-production": None,
    "ensembl-rest": None,
    "ensembl-taxonomy": None,
    "ensembl-test": None,
    "ensembl-tools": None,
    "ensembl-variation": None,
    "ensembl-vep": None,
    "ensembl-webcode": None,
    "public-plugins": None,
}

DEFAULT_GROUPS: Dict[str, List[str]] = {
    "api": ["ensembl", "ensembl-compara", "ensembl-funcgen", "ensembl-variation", "ensembl-io"],
    "compara": ["ensembl", "ensembl-compara", "ensembl-hive"],
    "funcgen": ["ensembl", "ensembl-funcgen"],
    "regulation": ["ensembl", "ensembl-funcgen", "ensembl-hive"],
    "variation": ["ensembl", "ensembl-variation", "ensembl-io", "ensembl-vep"],
    "production": ["ensembl", "ensembl-production", "ensembl-hive", "ensembl-datacheck",
                   "ensembl-metadata", "ensembl-taxonomy", "ensembl-orm"],
    "hive": ["ensembl-hive"],
    "rest": ["ensembl", "ensembl-compara", "ensembl-funcgen", "ensembl-variation",
             "ensembl-io", "ensembl-rest"],
    "test": ["ensembl-test"],
    "tools": ["ensembl", "ensembl-tools", "ensembl-git-tools"],
    "web": ["ensembl", "ensembl-compara", "ensembl-funcgen", "ensembl-variation",
            "ensembl-io", "ensembl-webcode", "public-plugins"],
}


def load_lenient_json(text: str) -> dict:
    """
    Decode JSON that may contain ``//`` line comments and trailing commas.

    Args:
        text: Document text

    Returns:
        Decoded document

    Raises:
        ValueError: If the document is not valid even after relaxing
    """
    stripped_lines = []
    for line in text.splitlines():
        # A // inside a string (e.g. a URL) is not a comment
        in_string = False
        escaped = False
        cut = len(line)
        for index, char in enumerate(line):
            if escaped:
                escaped = False
                continue
            if char == "\\":
                escaped = True
            elif char == '"':
                in_string = not in_string
            elif char == "/" and not in_string and line[index:index + 2] == "//":
                cut = index
                break
        stripped_lines.append(line[:cut])
    relaxed = re.sub(r",\s*([}\]])", r"\1", "\n".join(stripped_lines))
    return json.loads(relaxed)


class Registry:
    """
    Maps module names to remotes and group names to module lists.

    Names given on the command line are resolved through ``resolve``,
    which accepts any mix of group names, module names and ``public``.
    """

    def __init__(
        self,
        modules: Optional[Dict[str, Optional[str]]] = None,
        groups: Optional[Dict[str, List[str]]] = None,
        organisation: str = "Ensembl",
        protocol: str = "ssh",
        github_client=None
    ):
        """
        Initialize registry.

        Args:
            modules: Module names mapped to explicit remotes (or None)
            groups: Group names mapped to module names
            organisation: GitHub organisation owning the modules
            protocol: ``ssh`` or ``https`` for generated remotes
            github_client: Client used to expand the ``public`` group
        """
        self.modules: Dict[str, Optional[str]] = dict(DEFAULT_MODULES if modules is None else modules)
        self.groups: Dict[str, List[str]] = {
            name: list(members) for name, members in (DEFAULT_GROUPS if groups is None else groups).items()
        }
        self.organisation = organisation
        self.protocol = protocol
        self.github_client = github_client
        self._validate_groups()

    @classmethod
    def from_config(cls, config, github_client=None) -> 'Registry':
        """Build the registry for the application configuration."""
        registry = cls(
            organisation=config.github.organisation,
            protocol=config.git.protocol,
            github_client=github_client
        )
        if config.modules.file:
            registry.merge_file(config.modules.file)
        return registry

    def merge_file(self, path: Union[str, Path]) -> None:
        """
        Merge a JSON module table over the current one.

        The document may hold ``modules`` (name to URL or null) and
        ``groups`` (name to list of modules). A missing file is ignored.

        Raises:
            ConfigurationError: If the file cannot be parsed or names unknown modules
        """
        file_path = Path(path).expanduser()
        if not file_path.is_file():
            logger.warning(f"Module file {file_path} not found; using the built-in module table")
            return

        try:
            document = load_lenient_json(file_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ConfigurationError(f"Cannot parse module file {file_path}", cause=e)

        if not isinstance(document, dict):
            raise ConfigurationError(f"Module file {file_path} must contain a JSON object")

        modules = document.get("modules", {})
        groups = document.get("groups", {})
        if not isinstance(modules, dict) or not isinstance(groups, dict):
            raise ConfigurationError(f"'modules' and 'groups' in {file_path} must be JSON objects")

        self.modules.update(modules)
        for name, members in groups.items():
            if not isinstance(members, list):
                raise ConfigurationError(f"Group '{name}' in {file_path} must be a list of modules")
            self.groups[name] = list(members)

        self._validate_groups()
        logger.info(f"Loaded {len(modules)} modules and {len(groups)} groups from {file_path}")

    def _validate_groups(self) -> None:
        for group, members in self.groups.items():
            unknown = [member for member in members if member not in self.modules]
            if unknown:
                raise ConfigurationError(
                    f"Group '{group}' refers to unknown modules: {', '.join(unknown)}",
                    config_section="groups",
                    config_key=group
                )

    def group(self, name: str) -> Group:
        return Group(name=name, modules=list(self.groups[name]))

    def list_groups(self) -> List[Group]:
        return [self.group(name) for name in sorted(self.groups)]

    def remote_for(self, module_name: str) -> str:
        """
        Remote URL of a module.

        Modules with an explicit URL keep it; all others are built from
        the organisation and protocol.
        """
        explicit = self.modules.get(module_name)
        if explicit:
            return explicit
        if self.protocol == "https":
            return f"https://github.com/{self.organisation}/{module_name}.git"
        return f"git@github.com:{self.organisation}/{module_name}.git"

    def module(self, module_name: str) -> Module:
        return Module(name=module_name, remote=self.remote_for(module_name))

    def _public_modules(self) -> List[str]:
        if self.github_client is None:
            raise ConfigurationError(
                f"The '{PUBLIC_GROUP}' group needs GitHub access to list repositories"
            )
        return self.github_client.public_repositories(self.organisation)

    def resolve(self, names: Iterable[str]) -> List[Module]:
        """
        Expand group and module names into modules.

        Order follows the arguments and group definitions; duplicates are
        dropped.

        Args:
            names: Group names, module names or ``public``

        Returns:
            Modules in resolution order

        Raises:
            ConfigurationError: If a name is neither a group nor a module
        """
        resolved: List[str] = []
        for name in names:
            if name in self.groups:
                members = self.groups[name]
            elif name in self.modules:
                members = [name]
            elif name == PUBLIC_GROUP:
                members = self._public_modules()
            else:
                raise ConfigurationError(f"'{name}' is not a known module or group")

            for member in members:
                if member not in resolved:
                    resolved.append(member)

        return [self.module(name) for name in resolved]
