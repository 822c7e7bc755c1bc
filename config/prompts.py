"""
AI prompt fragments for the Threads auto-reply service.

This module centralizes all text used to build reply-generation prompts.
Modify these to adjust the tone, language, and structure of generated replies.

Structure (assembled in this order by src.ai_client.build_prompt):
    ORIGINAL_POST_TEMPLATE: The inbound post being answered
    PERSONA_TEMPLATE: Persona display name and style guide
    EXAMPLE_POSTS_HEADER / EXAMPLE_POST_LINE: Enumerated persona example posts
    TEMPLATE_*: Optional structured constraints from a reply template
    CLOSING_INSTRUCTION: Final instruction naming the reply language
"""

# =============================================================================
# Original Post
# =============================================================================
# Variables: {text}

ORIGINAL_POST_TEMPLATE = '元の投稿: "{text}"\n\n'

# =============================================================================
# Persona
# =============================================================================
# Variables: {display_name}, {style}

PERSONA_TEMPLATE = "ペルソナ: {display_name}\nスタイル: {style}\n\n"

EXAMPLE_POSTS_HEADER = "過去の投稿例:\n"

# Variables: {index} (1-based), {post}
EXAMPLE_POST_LINE = "{index}. {post}\n"

# =============================================================================
# Reply Template Constraints
# =============================================================================

TEMPLATE_BODY_LINE = "テンプレート: {body}\n"
TEMPLATE_INTENT_LINE = "意図: {intent}\n"
TEMPLATE_CTA_LINE = "CTA: {cta}\n"
TEMPLATE_LENGTH_LINE = "文字数制限: {min_len}文字〜{max_len}文字\n"

# Applied when only one length bound is set
DEFAULT_MIN_LENGTH = 0
DEFAULT_MAX_LENGTH = 500

# =============================================================================
# Closing Instruction
# =============================================================================
# Variables: {language}

CLOSING_INSTRUCTION = (
    "上記のペルソナとスタイルに基づいて、元の投稿に対する自然で魅力的な返信を生成してください。"
    "{language}で返信し、ペルソナの特徴を反映した口調と内容にしてください。"
)
