import re
from typing import Mapping

SYSTEM_PROMPT = "You are a helpful AI assistant."

DRAFT_PROMPT = """You are a professional blog writer. Generate a comprehensive blog post about the following topic.

Topic: {topic}

Please create:
1. An engaging title
2. A compelling introduction
3. Well-structured main content with subheadings
4. A strong conclusion
5. Use markdown formatting

The blog post should be informative, engaging, and approximately 800-1200 words. Do not include any explanations or introductory phrases, only output the final blog post content. Start with the title as a level one markdown heading."""

SEO_PROMPT = """You are an SEO expert. Analyze the following blog post content and generate SEO metadata.

Title: {title}
Content: {content}

Please generate:
1. SEO-optimized title (max 60 characters)
2. URL slug (lowercase, hyphens, no special characters)
3. Meta description (max 160 characters)
4. 5-7 relevant keywords

Return the response in JSON format with these fields: title, slug, description, keywords."""

CALENDAR_PROMPT = """You are a content strategy expert. Suggest the next five blog posts for a blog about:

Topic: {topic}

The most recent posts on the blog are:
{recent_posts}

Schedule one post per week starting {today}.

Return the response as a JSON array. Each element must have these fields: topic, estimatedTraffic (one of High, Medium, Low), date (YYYY-MM-DD)."""

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def format_prompt(template: str, variables: Mapping[str, object]) -> str:
    """
    Replace ``{name}`` placeholders with ``variables[name]``.

    This is plain token replacement: placeholders without a matching variable
    are left in the output verbatim, and braces in substituted values are not
    expanded again.
    """

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template)
