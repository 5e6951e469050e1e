"""
Imperative help rendering.

HelpGenerator turns a command node into a rich renderable:
  usage, description, subcommand table, positional arguments, option groups
  (required first, global last) and examples. examples(node) gathers the
  examples of a whole subtree for --help-examples.

Palette keys
- usage-label, program-name, usage-section, description-section
- group-label, argument-description, option-name, metavar, detail
- children-title, children-table, children, children-description
- examples-label, examples-dot, example, example-command
- panel-title

Customization
- context.styles overrides any palette entry.
- When context.colorful is False, styling is suppressed.
- When context.fancy is True, the help is framed in a panel.
"""
from collections import defaultdict, deque

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.containers import Lines
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .commands import DEFAULT_GROUP, GLOBAL_GROUP, PROFILE_GROUP, REQUIRED_GROUP
from .utils import *

_STYLES = {
    # === Head sections ===
    "usage-label": "bold #00E6FF",
    "program-name": "bold #FF4D94",
    "usage-section": "bold #36C5F0",
    "description-section": "italic #A3A3A3",

    # === Groups / arguments ===
    "group-label": "bold #FFFFFF",
    "argument-description": "#9CA3AF",
    "option-name": "bold #00E6FF",
    "metavar": "bold #FFD600",
    "detail": "#737373",

    # === Children table ===
    "children-title": "bold #FFFFFF",
    "children-table": "#4B5563",
    "children": "bold #36C5F0",
    "children-description": "#9CA3AF",

    # === Examples ===
    "examples-label": "bold #22C55E",
    "examples-dot": "#22C55E dim",
    "example": "#E5E7EB",
    "example-command": "bold #E5E7EB",

    # === Fancy panel ===
    "panel-title": "bold #FF4D94",
}

# Column where argument descriptions start
_INDENT = 30
_PADDING = 2


class HelpGenerator:
    """
    Render help for command nodes.

    >>> generator = HelpGenerator(context)
    >>> response.console.render(generator.render(node))
    """

    def __init__(self, context, /, width=100):
        self._context = context
        self._width = width
        self._console = Console(width=width, color_system=None)
        self._styles = defaultdict(str, _STYLES | dict(context.styles))

    def _style(self, style):
        return self._styles[style] if self._context.colorful else ""

    def _text(self, fragment, style=""):
        return Text(str(fragment), self._style(style) if style else "")

    def _wrap(self, text, width):
        return text.wrap(self._console, max(width, 20))

    def usage(self, node, /):
        usage = Text()
        usage.append("usage", self._style("usage-label")).append(": ")
        usage.append(self._text(node.route, "program-name"))
        inputs = []
        if node.type == "group":
            inputs.append("<command>")
        for positional in node.positionals:
            label = f"<{positional.name}>" if positional.required else f"[{positional.name}]"
            inputs.append(label + "..." if positional.type == "array" else label)
        inputs.append("[options]")
        usage.append(" ").append(self._text(" ".join(inputs), "usage-section"))
        return usage

    def render(self, node, /):
        """Return the help of node as a rich renderable."""
        renders = [self.usage(node).append("\n")]

        if descr := node.description or node.summary:
            renders.append(self._text(descr, "description-section").append("\n"))

        if children := [child for child in node.children if not child.hidden]:
            table = Table(
                "name", "summary",
                title=self._text("commands" if node.parent is None else "subcommands", "children-title"),
                width=int(self._width * (2 / 3)),
                box=ROUNDED,
                style=self._style("children-table"),
                header_style=self._style("children-title"),
            )
            for child in children:
                if descr := child.summary or child.description:
                    help = self._text(descr, "children-description")
                else:
                    help = Text.assemble(
                        self._text("no description", "children-description"),
                        " - ",
                        self._text(f"run '{child.route} --help' for details", "examples-label"),
                    )
                table.add_row(self._text(" | ".join((child.name, *child.aliases)), "children"), help)
            renders.append(table)

        sections = Text()
        if node.positionals:
            sections.append(self._text("Positional Arguments", "group-label")).append(":\n")
            for positional in node.positionals:
                sections.append(self._entry(
                    [self._text(positional.name, "option-name")],
                    positional.type,
                    positional.description,
                    self._details(positional),
                ))
            sections.append("\n")
        for group, options in self._groups(node).items():
            sections.append(self._text(group, "group-label")).append(":\n")
            for option in options:
                names = [self._text(flag, "option-name") for flag in sorted(option.flags, key=len)]
                sections.append(self._entry(names, option.type, option.description, self._details(option)))
            sections.append("\n")
        if sections:
            renders.append(sections)

        if node.examples:
            renders.append(self._examples(node))

        renders[-1].rstrip()
        renderable = Group(*renders)
        if self._context.fancy:
            renderable = Panel(
                renderable,
                title=Text.assemble("[ ", f"{node.route} help".upper(), " ]", style=self._style("panel-title")),
                title_align="left",
            )
        return renderable

    def examples(self, node, /):
        """Return the examples of node and every visible descendant."""
        renders = []
        for descendant in node.walk():
            if descendant.hidden or not descendant.examples:
                continue
            renders.append(self._text(descendant.route, "program-name"))
            renders.append(self._examples(descendant).append("\n"))
        if not renders:
            renders.append(self._text(f"no examples available under '{node.route}'", "description-section"))
        renders[-1].rstrip()
        return Group(*renders)

    def _groups(self, node):
        groups = {REQUIRED_GROUP: [], DEFAULT_GROUP: []}
        for option in node.options:
            if not option.hidden:
                groups.setdefault(option.group, []).append(option)
        for group in (PROFILE_GROUP, GLOBAL_GROUP):
            if group in groups:
                groups[group] = groups.pop(group)
        return {group: options for group, options in groups.items() if options}

    def _details(self, argument):
        details = []
        if getattr(argument, "default", Unset) not in (Unset, None):
            details.append(f"Default value: {argument.default}")
        if argument.allowable is not None:
            details.append("Allowed values: " + ", ".join(argument.allowable.values))
        if argument.numeric_range is not None:
            details.append("Range: %s..%s" % argument.numeric_range)
        if getattr(argument, "required", False):
            details.append("Required")
        return details

    def _entry(self, names, type, description, details):
        segments = deque(names)
        segments.append(Text.assemble("(", self._text(type, "metavar"), ")"))

        # Wrap names across the width, continuation lines indented deeper
        lines = Lines([segments.popleft()])
        while segments:
            if len(lines[-1]) + 1 + len(segment := segments.popleft()) > self._width - _PADDING * 4:
                lines.append(segment)
            else:
                lines[-1].append(Text(" ") + segment)

        section = Text(" " * _PADDING)
        section.append(lines.pop(0))
        for line in lines:
            section.append("\n").append(" " * _PADDING * 4).append(line)

        paragraphs = [self._text(description, "argument-description")] if description else []
        paragraphs.extend(self._text(detail, "detail") for detail in details)
        for index, paragraph in enumerate(paragraphs):
            if index or lines or len(section) >= _INDENT - 1:
                section.append("\n").append(" " * _INDENT)
            else:
                section.append(" " * (_INDENT - len(section)))
            wrapped = self._wrap(paragraph, self._width - _INDENT)
            section.append(wrapped.pop(0))
            for line in wrapped:
                section.append("\n").append(" " * _INDENT).append(line)
        return section.append("\n")

    def _examples(self, node):
        padding = len(dot := self._text(" • ", "examples-dot"))
        examples = Text()
        examples.append(self._text("examples", "examples-label")).append(":\n")
        for example in node.examples:
            for index, segment in enumerate(self._wrap(self._text(example.description, "example"), self._width - padding)):
                examples.append(dot if index == 0 else " " * padding).append(segment).append("\n")
            examples.append(" " * padding).append(self._text("$ " + example.render(node.route), "example-command"))
            examples.append("\n")
        return examples


__all__ = (
    "HelpGenerator",
)
