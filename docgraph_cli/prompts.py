"""Prompt construction for documentation generation.

The prompt is a pure function of its inputs: the same structure, insights
and context always render the same text.
"""

from __future__ import annotations

from typing import List, Optional

from .models import ContextChunk, Insights, Scope, StructuralModel

PREAMBLE = (
    "You are an expert technical writer specializing in code documentation. "
    "Generate comprehensive, clear, and accurate documentation for the following code.\n\n"
)

REQUIREMENTS = (
    "\n## Documentation Requirements\n\n"
    "Generate comprehensive documentation that includes:\n"
    "1. **Overview**: High-level description of what this code does\n"
    "2. **Architecture**: Structure and organization\n"
    "3. **API Documentation**: All public functions, classes, and methods with:\n"
    "   - Parameter descriptions\n"
    "   - Return value descriptions\n"
    "   - Usage examples\n"
    "4. **Dependencies**: Key dependencies and how they're used\n"
    "5. **Usage Examples**: Practical code examples\n"
    "6. **Notes**: Any important considerations or best practices\n\n"
    "Format the documentation in Markdown. Be thorough, accurate, and clear.\n"
)


def scope_heading(scope: Scope, target: Optional[str]) -> str:
    if scope == Scope.MODULE:
        return f"# Module Documentation Request\n\nGenerate documentation for the module: {target}\n\n"
    if scope == Scope.FILE:
        return f"# File Documentation Request\n\nGenerate documentation for the file: {target}\n\n"
    return "# Repository Documentation Request\n\nGenerate documentation for the entire repository.\n\n"


def format_structure(structure: StructuralModel, insights: Optional[Insights] = None) -> str:
    lines: List[str] = []

    if structure.files:
        lines.append("### Files Analyzed")
        lines.extend(f"- {f.path} ({f.language})" for f in structure.files)
        lines.append("")

    functions = [(f.path, fn) for f in structure.files for fn in f.functions]
    if functions:
        lines.append("### Functions")
        lines.extend(f"- {fn.signature()} [{path}]" for path, fn in functions)
        lines.append("")

    classes = [(f.path, cls) for f in structure.files for cls in f.classes]
    if classes:
        lines.append("### Classes")
        for path, cls in classes:
            parent = f" extends {cls.extends}" if cls.extends else ""
            lines.append(f"- {cls.name}{parent} [{path}]")
        lines.append("")

    if structure.dependencies:
        lines.append("### Dependencies")
        lines.extend(f"- {d.from_path} → {d.to} ({d.kind})" for d in structure.dependencies)
        lines.append("")

    if insights is not None and (insights.key_components or insights.critical_paths):
        lines.append("### Key Insights")
        if insights.key_components:
            lines.append("Exported components: " + ", ".join(insights.key_components))
        if insights.critical_paths:
            lines.append("Most depended-upon files: " + ", ".join(insights.critical_paths))
        lines.append("")

    return "\n".join(lines) + ("\n" if lines else "")


def format_context(chunks: List[ContextChunk]) -> str:
    blocks = [c for c in chunks if c.content]
    if not blocks:
        return ""
    parts = ["\n## Related Code Context\n\n"]
    for index, chunk in enumerate(blocks, 1):
        parts.append(f"### Context {index}\nFile: {chunk.path}\n```{chunk.language}\n{chunk.content}\n```\n\n")
    return "".join(parts)


def build_documentation_prompt(
    structure: StructuralModel,
    chunks: List[ContextChunk],
    scope: Scope,
    target: Optional[str] = None,
    insights: Optional[Insights] = None,
) -> str:
    return (
        PREAMBLE
        + scope_heading(scope, target)
        + "## Code Structure\n\n"
        + format_structure(structure, insights)
        + format_context(chunks)
        + REQUIREMENTS
    )
