"""
Imperative profiles: typed, named configuration bags merged into command arguments.

Scope
- ProfileSpec: which profile types a command node requires or accepts.
- ProfileType / ProfileField: schema of a profile type. Each property maps to the
  command option it feeds and may be marked secure.
- Profile: one named property bag of a given type.
- ProfileStore: read-only access to persisted profiles, loaded lazily from
  <home>/profiles.yaml. Layout:

      defaults:
        zosmf: lpar1
      profiles:
        zosmf:
          lpar1:
            host: lpar1.example.com
            port: 443
            password: secret

- ProfileResolver: picks one profile per referenced type (explicit name first,
  then the configured default) and flattens their properties into option values.

Notes
- The store is never written by this package.
- Property values of several profiles do not override each other: the first
  loaded profile providing an option wins, required types before optional ones.
"""
import logging
import os.path
from collections.abc import Iterable, Mapping
from types import MappingProxyType

import yaml

from .faults import ProfileNotFoundError, ProfileStoreError
from .utils import *

logger = logging.getLogger(__name__)

PROFILES_FILE = "profiles.yaml"


def _sanitize_types(label, types, /):
    if isinstance(types, str) or not isinstance(types, Iterable):
        raise TypeError(f"profile spec {label!r} must be an iterable of profile types")
    sanitized = []
    for type in types:
        if not isinstance(type, str) or not (type := type.strip()):
            raise ValueError(f"profile spec {label!r} must contain non-empty strings")
        if type not in sanitized:
            sanitized.append(type)
    return tuple(sanitized)


class ProfileSpec:
    """
    Profile requirements of a command node.

    >>> ProfileSpec(required=("zosmf",), optional=("tso",))
    >>> ProfileSpec.from_mapping({"required": ["zosmf"]})
    """

    def __init__(self, required=(), optional=()):
        self._required = _sanitize_types("required", required)
        self._optional = _sanitize_types("optional", optional)
        if overlap := set(self._required) & set(self._optional):
            raise ValueError(f"profile types {sorted(overlap)} cannot be both required and optional")

    required = mirror("required")
    optional = mirror("optional")

    @property
    def types(self):
        return self._required + self._optional

    def __bool__(self):
        return bool(self._required or self._optional)

    def __repr__(self):
        return f"profile-spec(required={self._required!r}, optional={self._optional!r})"

    @classmethod
    def from_mapping(cls, mapping, /):
        if not isinstance(mapping, Mapping):
            raise TypeError("profile spec must be a mapping")
        if unknown := set(mapping) - {"required", "optional"}:
            raise ValueError(f"profile spec has unknown keys {sorted(unknown)}")
        return cls(mapping.get("required", ()), mapping.get("optional", ()))


class ProfileField:
    """One property of a profile type: the option it feeds and its secrecy."""

    def __init__(self, option=Unset, *, secure=False):
        if not isinstance(option, str | Unset):
            raise TypeError("profile field 'option' must be a string")
        self._option = coalesce(option)
        self._secure = bool(secure)

    option = mirror("option")
    secure = mirror("secure")


class ProfileType:
    """
    Schema of a profile type.

    Properties not listed in fields still load, and feed the option spelled like
    the property (kebab-case), without being secure.
    """

    def __init__(self, name, /, fields=MappingProxyType({})):
        if not isinstance(name, str) or not (name := name.strip()):
            raise ValueError("profile type name must be a non-empty string")
        if not isinstance(fields, Mapping):
            raise TypeError("profile type fields must be a mapping")
        self._name = name
        self._fields = {}
        for property, field in fields.items():
            if not isinstance(field, ProfileField):
                raise TypeError(f"profile type {name!r} field {property!r} must be a profile field")
            self._fields[property] = field

    name = mirror("name")
    fields = mirror("fields")

    def option(self, property, /):
        """Return the option name a property feeds."""
        try:
            return self._fields[property].option or kebab(property)
        except KeyError:
            return kebab(property)

    def secure(self, property, /):
        try:
            return self._fields[property].secure
        except KeyError:
            return False


class Profile:
    """A loaded, read-only profile."""

    def __init__(self, name, type, /, properties):
        self._name = name
        self._type = type
        self._properties = dict(properties)

    name = mirror("name")
    type = mirror("type")
    properties = mirror("properties")

    def __repr__(self):
        return f"profile(name={self._name!r}, type={self._type!r})"


class ProfileStore:
    """
    Persisted profiles, read lazily on first access.

    Parameters
    - home: directory holding profiles.yaml (usually context.home).
    - types: ProfileType schemas known to the application.
    """

    def __init__(self, home, /, types=()):
        self._home = home
        self._types = {type.name: type for type in types}
        self._document = Unset

    home = mirror("home")

    @property
    def path(self):
        return os.path.join(self._home, PROFILES_FILE)

    @classmethod
    def from_mapping(cls, document, /, types=()):
        """Build a store over an in-memory document with the profiles.yaml layout."""
        self = cls(os.curdir, types)
        self._document = self._sanitize(document)
        return self

    def _sanitize(self, document):
        if document is None:
            return {"defaults": {}, "profiles": {}}
        if not isinstance(document, Mapping):
            raise ProfileStoreError(f"profile store {self.path!r} must contain a mapping",
                                    hint="expected top-level 'defaults' and 'profiles' keys")
        defaults = document.get("defaults") or {}
        profiles = document.get("profiles") or {}
        if not isinstance(defaults, Mapping) or not isinstance(profiles, Mapping):
            raise ProfileStoreError(f"profile store {self.path!r} has malformed 'defaults' or 'profiles'")
        for type, named in profiles.items():
            if not isinstance(named, Mapping) or not all(isinstance(bag, Mapping | None) for bag in named.values()):
                raise ProfileStoreError(f"profile store {self.path!r} has malformed profiles of type {type!r}")
        return {"defaults": dict(defaults), "profiles": {type: dict(named) for type, named in profiles.items()}}

    def _load(self):
        if self._document is not Unset:
            return self._document
        try:
            with open(self.path, encoding="utf-8") as stream:
                document = yaml.safe_load(stream)
        except FileNotFoundError:
            logger.debug("no profile store at %s", self.path)
            document = None
        except yaml.YAMLError as error:
            raise ProfileStoreError(f"unable to parse profile store {self.path!r}", cause=error,
                                    hint="fix the YAML syntax of the file") from error
        self._document = self._sanitize(document)
        logger.debug("loaded profile store %s", self.path)
        return self._document

    def schema(self, type, /):
        """Return the ProfileType for type, or a schema-less one."""
        return self._types.get(type) or ProfileType(type)

    def names(self, type, /):
        return tuple(self._load()["profiles"].get(type, {}))

    def get(self, type, name, /):
        """Return the named profile of type, or None."""
        try:
            properties = self._load()["profiles"][type][name]
        except KeyError:
            return None
        return Profile(name, type, properties or {})

    def default(self, type, /):
        """Return the configured default profile of type, or None."""
        if (name := self._load()["defaults"].get(type)) is None:
            return None
        return self.get(type, name)


class LoadedProfiles(Mapping):
    """
    Result of profile resolution: a read-only mapping of option name to value.

    Attributes
    - secure: option names whose values came from secure profile fields.
    - profiles: profile type → loaded Profile.
    """

    def __init__(self, values=MappingProxyType({}), secure=frozenset(), profiles=MappingProxyType({})):
        self._values = MappingProxyType(dict(values))
        self._secure = frozenset(secure)
        self._profiles = MappingProxyType(dict(profiles))

    secure = mirror("secure")
    profiles = mirror("profiles")

    def __getitem__(self, key, /):
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def get_profile(self, type, /):
        """Return the loaded profile of type, or None."""
        return self._profiles.get(type)

    def __repr__(self):
        return "loaded-profiles(%s)" % ", ".join(f"{type}={profile.name!r}" for type, profile in self._profiles.items())


class ProfileResolver:
    """
    Select and flatten the profiles a command node references.

    >>> resolver = ProfileResolver(store)
    >>> loaded = resolver.resolve(ProfileSpec(required=("zosmf",)), {"zosmf": "lpar2"})
    >>> loaded["host"]
    """

    def __init__(self, store, /):
        self._store = store

    def resolve(self, spec, explicit=MappingProxyType({}), /):
        """
        Resolve the profiles for spec.

        Parameters
        - spec: ProfileSpec (or None for commands without profiles).
        - explicit: profile type → profile name chosen by the user.

        Raises
        - ProfileNotFoundError: a required type has neither an explicit nor a default
          profile, or an explicitly named profile does not exist.
        """
        if not spec:
            return LoadedProfiles()

        values, secure, loaded = {}, set(), {}
        for type in spec.types:
            required = type in spec.required
            if (name := explicit.get(type)) is not None:
                profile = self._store.get(type, name)
                if profile is None:
                    raise ProfileNotFoundError(
                        f"profile {name!r} of type {type!r} does not exist",
                        type=type,
                        name=name,
                        hint=self._hint(type),
                    )
            else:
                profile = self._store.default(type)
                if profile is None:
                    if required:
                        raise ProfileNotFoundError(
                            f"no default {type!r} profile is configured and none was specified",
                            type=type,
                            hint=f"pass --{type}-profile <name> or configure a default {type!r} profile",
                        )
                    logger.debug("optional profile type %r has no default, skipping", type)
                    continue

            loaded[type] = profile
            schema = self._store.schema(type)
            for property, value in profile.properties.items():
                if value is None:
                    continue
                option = schema.option(property)
                if option in values:
                    continue
                values[option] = value
                if schema.secure(property):
                    secure.add(option)
            logger.debug("loaded %s profile %r", type, profile.name)

        return LoadedProfiles(values, secure, loaded)

    def _hint(self, type):
        if names := self._store.names(type):
            return "available %r profiles: %s" % (type, ", ".join(names))
        return f"no {type!r} profiles exist"


__all__ = (
    "ProfileSpec",
    "ProfileField",
    "ProfileType",
    "Profile",
    "ProfileStore",
    "LoadedProfiles",
    "ProfileResolver",
)
