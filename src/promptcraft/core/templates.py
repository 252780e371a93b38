"""Built-in enhancement templates and the in-memory template registry.

Every known template id carries a fixed instruction text (the template's
*master prompt*) plus provider and behaviour defaults.  These constants are
the last resolution tier: whatever happens to the document store or the
in-memory working copy, :func:`get_builtin_instructions` always returns a
usable, non-empty string.

Template Ids
------------
========  ============  ============================================
Group     Id            Purpose
========  ============  ============================================
second    standard      General-purpose detail enhancement
second    pipeline      Pipe-delimited structured sections
second    longform      Flowing descriptive paragraph
second    narrative     Story-driven scene description
second    wildcard      Inventive, unexpected reinterpretation
third     custom1..3    User-editable slots, seeded with a neutral text
========  ============  ============================================

The *group* decides which busy flag an enhancement call raises, so
enhancements from different rows never block each other.
"""

from __future__ import annotations

import logging
from typing import Any

from .models import Template

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "standard"

SECOND_ROW = "second_row"
THIRD_ROW = "third_row"

# ---------------------------------------------------------------------------
# Fixed instruction texts.
# ---------------------------------------------------------------------------

_STANDARD_INSTRUCTIONS = (
    "You are an expert prompt engineer for AI image generation.\n\n"
    "Your task is to enhance the original prompt to create a more detailed, visually rich "
    "description for AI image generation while maintaining the core subject and intent. "
    "Describe lighting, composition, materials and atmosphere concretely. Keep the result "
    "a single prompt of comma-separated descriptive phrases.\n\n"
    "Enhanced prompt:"
)

_PIPELINE_INSTRUCTIONS = (
    "You are a specialized expert in Pipeline format prompts for AI image generation.\n\n"
    "Your task is to transform the original prompt into a structured Pipeline format. The "
    "Pipeline format organizes prompts in clear, distinct sections separated by pipes (|) "
    "and follows this structure:\n\n"
    "[Pose/Action and Setting] | [Character Description] | [Materials and Quality] | "
    "[Outfit/Clothing Details] | [Camera Details and Accessories]\n\n"
    "Enhanced Pipeline prompt:"
)

_LONGFORM_INSTRUCTIONS = (
    "You are a descriptive writer producing long-form prompts for AI image generation.\n\n"
    "Rewrite the original prompt as one flowing paragraph of complete sentences. Describe "
    "the subject first, then the setting, the lighting, the mood and finally the artistic "
    "style or camera treatment. Do not use lists or keyword strings.\n\n"
    "Longform prompt:"
)

_NARRATIVE_INSTRUCTIONS = (
    "You are a specialized expert in transforming standard image prompts into narrative "
    "story formats.\n\n"
    "Your task is to rewrite the original prompt into a narrative-focused format that "
    "emphasizes storytelling, character development, and scene description. Establish the "
    "setting, the characters and the atmosphere of a single frozen moment.\n\n"
    "Narrative prompt:"
)

_WILDCARD_INSTRUCTIONS = (
    "You are a creative genius specialized in transforming standard image prompts into "
    "wildly inventive and unexpected concepts.\n\n"
    "Your task is to take the original prompt and infuse it with surprising, unexpected "
    "elements that create a unique and striking visual concept, while keeping the result "
    "coherent enough to render.\n\n"
    "Wildcard prompt:"
)

_CUSTOM_INSTRUCTIONS = (
    "You are a prompt engineer for AI image generation.\n\n"
    "Apply your formatting rules to the following content. Preserve the subject and intent, "
    "add concrete visual detail, and return only the finished prompt.\n\n"
    "Prompt:"
)

_BUILTIN_DEFINITIONS: dict[str, dict[str, Any]] = {
    "standard": {
        "name": "Standard",
        "master_prompt": _STANDARD_INSTRUCTIONS,
        "usage_rules": (
            "- Keep prompts concise and specific\n"
            "- Separate concepts with commas\n"
            "- Start with the most important elements"
        ),
    },
    "pipeline": {
        "name": "Pipeline",
        "master_prompt": _PIPELINE_INSTRUCTIONS,
        "format_template": "{prompt}",
        "usage_rules": "- Five pipe-separated sections in fixed order",
    },
    "longform": {
        "name": "Longform",
        "master_prompt": _LONGFORM_INSTRUCTIONS,
        "usage_rules": "- Complete sentences\n- Subject, setting, lighting, mood, style",
    },
    "narrative": {
        "name": "Narrative",
        "master_prompt": _NARRATIVE_INSTRUCTIONS,
        "usage_rules": (
            "- Create a structured narrative flow\n"
            "- Focus on the core story elements\n"
            "- Establish setting, characters, and atmosphere"
        ),
    },
    "wildcard": {
        "name": "Wildcard",
        "master_prompt": _WILDCARD_INSTRUCTIONS,
        "usage_rules": (
            "- Introduce surprising or unexpected elements\n"
            "- Maintain coherence while adding creative twists"
        ),
        "use_happy_talk": True,
    },
    "custom1": {"name": "Custom 1", "master_prompt": _CUSTOM_INSTRUCTIONS},
    "custom2": {"name": "Custom 2", "master_prompt": _CUSTOM_INSTRUCTIONS},
    "custom3": {"name": "Custom 3", "master_prompt": _CUSTOM_INSTRUCTIONS},
}

BUILTIN_TEMPLATE_IDS: tuple[str, ...] = tuple(_BUILTIN_DEFINITIONS)


def get_builtin_instructions(template_id: str) -> str:
    """Return the fixed instruction text for a template id.

    Unknown ids fall back to the ``standard`` text, so the result is never empty.
    """
    definition = _BUILTIN_DEFINITIONS.get(template_id, _BUILTIN_DEFINITIONS[DEFAULT_TEMPLATE_ID])
    return definition["master_prompt"]


def builtin_template(template_id: str) -> Template:
    """Return a fresh Template holding the built-in defaults for an id.

    Unknown ids get the ``standard`` defaults under their own id and name.
    Provider and model are left empty so configuration defaults apply.
    """
    definition = _BUILTIN_DEFINITIONS.get(template_id)
    if definition is None:
        definition = {**_BUILTIN_DEFINITIONS[DEFAULT_TEMPLATE_ID], "name": template_id}
    return Template(id=template_id, **definition)


def _working_copy(template_id: str) -> Template:
    """Seed value for the in-memory working copy.

    Custom slots start blank so their built-in text is only reached through
    the last resolution tier until the user edits them.
    """
    template = builtin_template(template_id)
    if template_id.startswith("custom"):
        return template.merged(master_prompt="")
    return template


def template_group(template_id: str) -> str:
    """Return the busy-flag group ("row") a template belongs to."""
    if template_id in BUILTIN_TEMPLATE_IDS and not template_id.startswith("custom"):
        return SECOND_ROW
    return THIRD_ROW


class TemplateRegistry:
    """In-memory catalog of templates, seeded from the built-in defaults.

    The registry holds the session-lived working copy that edits mutate.  It
    never persists anything itself; :class:`~promptcraft.core.resolver.TemplateResolver`
    writes to the document store when a template is saved.
    """

    def __init__(self, seed_builtins: bool = True) -> None:
        """Initialize the registry.

        Args:
            seed_builtins: Populate the working copy with every built-in template
        """
        self._templates: dict[str, Template] = {}
        if seed_builtins:
            for template_id in BUILTIN_TEMPLATE_IDS:
                self._templates[template_id] = _working_copy(template_id)
        logger.debug(f"TemplateRegistry seeded with {len(self._templates)} templates")

    def get_builtin_instructions(self, template_id: str) -> str:
        return get_builtin_instructions(template_id)

    def get_template(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def upsert_template(self, template_id: str, **fields: Any) -> Template:
        """Merge partial fields into the working copy of a template.

        The working copy is created from the built-in defaults when absent.

        Args:
            template_id: Template to update
            **fields: Template field values to overwrite

        Returns:
            The updated working copy

        Raises:
            ValueError: If a field name is not a Template field
        """
        current = self._templates.get(template_id) or _working_copy(template_id)
        updated = current.merged(**fields)
        self._templates[template_id] = updated
        logger.info(f"Updated in-memory template '{template_id}': {sorted(fields)}")
        return updated

    def reset_template(self, template_id: str) -> Template:
        """Restore the built-in defaults for one template id."""
        self._templates[template_id] = _working_copy(template_id)
        logger.info(f"Reset template '{template_id}' to built-in defaults")
        return self._templates[template_id]

    def list_templates(self) -> list[Template]:
        """List templates, built-ins first in canonical order."""
        ordered = [self._templates[t] for t in BUILTIN_TEMPLATE_IDS if t in self._templates]
        extras = [t for tid, t in self._templates.items() if tid not in BUILTIN_TEMPLATE_IDS]
        return ordered + extras
