"""
Imperative syntax validation of resolved argument sets.

Checks, in order (the first violation wins):
  a. required options and positionals have a value,
  b. every value has its declared type. Numeric strings become numbers,
     "true"/"false" become booleans, JSON text is parsed, scalars given to array
     options become one-element lists. Empty values and non-array options given
     several times fail here,
  c. values with allowable values match one of the patterns,
  d. no two supplied options conflict (conflicts_with, either direction),
  e. an absent option's absence_implications are all present,
then the remaining declarative constraints: implies, implies_one_of,
value_implications, numeric and length ranges, array duplicates, positional
regexes, must_specify_one, only_one_of and existing local files.

Notes
- "supplied" means a value coming from any layer but the definition defaults,
  "present" means any value at all.
- validate() never mutates its input: the coerced values come back in a new
  ResolvedArguments, so validating the same set twice yields the same verdict.
"""
import json
import logging
import os.path
import re
from typing import NamedTuple

from .arguments import Option
from .faults import FaultCode, MissingPositionalError, ValidationError
from .mapping import COMMAND_LINE
from .utils import *

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


class Verdict(NamedTuple):
    """Outcome of a validation: coerced arguments, or the first violation."""
    arguments: object
    error: ValidationError | None

    @property
    def valid(self):
        return self.error is None


def _label(definition, /):
    return dashed(definition.name) if isinstance(definition, Option) else definition.name


def _labels(names, /):
    return ", ".join(map(dashed, names))


def _fail(code, message, definition=None, /, **payload):
    if definition is not None:
        payload |= {"option": definition.name, "definition": definition}
    raise ValidationError(message, code=code, **payload)


class SyntaxValidator:
    """
    Validate resolved argument sets against a node's merged definitions.

    >>> verdict = SyntaxValidator().validate(node, arguments)
    >>> verdict.valid, verdict.error
    """

    def validate(self, node, arguments, /):
        """
        Return a Verdict for arguments.

        Nodes flagged syntax_throw raise the ValidationError instead of returning it.
        """
        try:
            values = self._check(node, arguments)
        except ValidationError as error:
            logger.debug("syntax validation of %r failed on %r: %s", node.route, error.option, error.message)
            if node.syntax_throw:
                raise
            return Verdict(None, error)
        return Verdict(arguments.with_values(values), None)

    def _check(self, node, arguments):
        values = dict(arguments)
        definitions = (*node.positionals, *node.options)

        # a. required
        for index, positional in enumerate(node.positionals, 1):
            if positional.required and values.get(positional.name) is None:
                raise MissingPositionalError(
                    f"missing the {ordinal(index)} positional argument {positional.name!r}",
                    option=positional.name,
                    definition=positional,
                    hint=positional.description or f"run '{node.route} --help' for usage",
                )
        for option in node.options:
            if option.required and values.get(option.name) is None:
                _fail(
                    FaultCode.MISSING_OPTION,
                    f"missing required option {dashed(option.name)}",
                    option,
                    hint=option.description or f"run '{node.route} --help' for usage",
                )

        # b. types
        for definition in definitions:
            if values.get(name := definition.name) is not None:
                values[name] = self._coerce(definition, values[name], arguments.origin(name))

        # c. allowable values
        for definition in definitions:
            allowable = definition.allowable
            if allowable is not None and values.get(definition.name) is not None:
                if not allowable.matches(values[definition.name]):
                    _fail(
                        FaultCode.INVALID_VALUE,
                        f"invalid value {values[definition.name]!r} for {_label(definition)}",
                        definition,
                        hint="the value must match one of: %s" % ", ".join(allowable.values),
                    )

        # d. conflicts
        for option in node.options:
            if not arguments.supplied(option.name):
                continue
            for other in option.conflicts_with:
                if arguments.supplied(other):
                    _fail(
                        FaultCode.CONFLICTING_OPTIONS,
                        f"the options {dashed(option.name)} and {dashed(other)} are mutually exclusive",
                        option,
                        conflicting=other,
                    )

        # e. absence implications
        for option in node.options:
            if option.name in values or not option.absence_implications:
                continue
            for other in option.absence_implications:
                if values.get(other) is None:
                    _fail(
                        FaultCode.ABSENCE_IMPLICATION,
                        f"if you do not specify {dashed(option.name)}, you must specify "
                        + _labels(option.absence_implications),
                        option,
                        missing=other,
                    )

        self._check_implications(node, arguments, values)
        self._check_ranges(definitions, values)
        self._check_sets(node, arguments, values)
        return values

    def _coerce(self, definition, value, origin):
        label = _label(definition)
        if definition.type == "array":
            if isinstance(value, list | tuple):
                if not value and origin == COMMAND_LINE:
                    _fail(FaultCode.EMPTY_VALUE, f"no value specified for {label}", definition,
                          hint="this option requires at least one value")
                return list(value)
            return [value]

        if isinstance(value, list | tuple):
            _fail(
                FaultCode.SPECIFIED_MULTIPLE_TIMES,
                f"you cannot specify {label} multiple times" if origin == COMMAND_LINE else
                f"{label} expects a single value, got {value!r}",
                definition,
            )
        if value == "":
            _fail(FaultCode.EMPTY_VALUE, f"no value specified for {label}", definition,
                  hint=f"this option requires a value of type {definition.type}")

        match definition.type:
            case "boolean":
                if isinstance(value, bool):
                    return value
                if isinstance(value, str) and value.lower() in ("true", "false"):
                    return value.lower() == "true"
                _fail(FaultCode.INVALID_TYPE, f"invalid value {value!r} for {label}", definition,
                      hint="the value must be a boolean (true or false)")
            case "number":
                if isinstance(value, int | float) and not isinstance(value, bool):
                    return value
                if isinstance(value, str) and _NUMERIC.fullmatch(value := value.strip()):
                    try:
                        return int(value)
                    except ValueError:
                        return float(value)
                _fail(FaultCode.INVALID_TYPE, f"invalid value {value!r} for {label}", definition,
                      hint="the value must be a number")
            case "json":
                if not isinstance(value, str):
                    return value
                try:
                    return json.loads(value)
                except json.JSONDecodeError as error:
                    _fail(FaultCode.INVALID_TYPE, f"invalid JSON string supplied for {label}", definition,
                          hint=f"JSON parsing failed: {error}")
            case _:
                if isinstance(value, str):
                    return value
                if isinstance(value, int | float) and not isinstance(value, bool):
                    return str(value)
                _fail(FaultCode.INVALID_TYPE, f"invalid value {value!r} for {label}", definition,
                      hint="the value must be a string")

    def _check_implications(self, node, arguments, values):
        for option in node.options:
            if not arguments.supplied(option.name):
                continue
            for other in option.implies:
                if values.get(other) is None:
                    _fail(
                        FaultCode.IMPLICATION,
                        f"if you specify {dashed(option.name)}, you must also specify {dashed(other)}",
                        option,
                        missing=other,
                    )
            if option.implies_one_of and all(values.get(other) is None for other in option.implies_one_of):
                _fail(
                    FaultCode.IMPLICATION,
                    f"if you specify {dashed(option.name)}, you must also specify at least one of "
                    + _labels(option.implies_one_of),
                    option,
                )
            sensitive = option.allowable is not None and option.allowable.case_sensitive
            for value, implied in option.value_implications.items():
                given = str(values[option.name])
                if given != value and (sensitive or given.lower() != value.lower()):
                    continue
                for other in implied:
                    if values.get(other) is None:
                        _fail(
                            FaultCode.VALUE_IMPLICATION,
                            f"if you specify the value {value!r} for {dashed(option.name)}, "
                            f"you must also specify {dashed(other)}",
                            option,
                            missing=other,
                        )

    def _check_ranges(self, definitions, values):
        for definition in definitions:
            if (value := values.get(definition.name)) is None:
                continue
            label = _label(definition)
            if definition.numeric_range is not None and isinstance(value, int | float):
                low, high = definition.numeric_range
                if not low <= value <= high:
                    _fail(FaultCode.OUT_OF_RANGE, f"invalid numeric value {value!r} for {label}", definition,
                          hint=f"the value must be between {low} and {high} (inclusive)")
            if definition.length_range is not None:
                low, high = definition.length_range
                for item in value if isinstance(value, list) else [value]:
                    if isinstance(item, str) and not low <= len(item) <= high:
                        _fail(FaultCode.INVALID_LENGTH, f"invalid value length {len(item)} for {label}", definition,
                              hint=f"the length must be between {low} and {high} (inclusive)")
            if isinstance(value, list) and not getattr(definition, "array_allow_duplicate", True):
                seen = []
                for item in value:
                    if item in seen:
                        _fail(FaultCode.DUPLICATED_VALUE, f"duplicate value {item!r} specified for {label}",
                              definition, hint="duplicate values are not allowed")
                    seen.append(item)
            if (regex := getattr(definition, "regex", None)) is not None:
                for item in value if isinstance(value, list) else [value]:
                    if not re.search(regex, str(item)):
                        _fail(FaultCode.PATTERN_MISMATCH, f"invalid format {item!r} for positional {label!r}",
                              definition, hint=f"the value must match the regular expression {regex}")
            if definition.type == "existing-local-file" and not os.path.isfile(value):
                _fail(FaultCode.FILE_NOT_FOUND, f"file {value!r} given for {label} does not exist", definition)

    def _check_sets(self, node, arguments, values):
        if node.must_specify_one and all(values.get(name) is None for name in node.must_specify_one):
            _fail(
                FaultCode.MUST_SPECIFY_ONE,
                "you must specify one of the following options: " + _labels(node.must_specify_one),
                option=", ".join(node.must_specify_one),
            )
        if len(specified := [name for name in node.only_one_of if arguments.supplied(name)]) > 1:
            _fail(
                FaultCode.ONLY_ONE_OF,
                "you may specify only one of the following options: " + _labels(node.only_one_of),
                option=", ".join(node.only_one_of),
                specified=specified,
            )


__all__ = (
    "SyntaxValidator",
    "Verdict",
)
