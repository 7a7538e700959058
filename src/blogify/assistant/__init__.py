"""
Content assistance backed by a chat-style text-generation provider.

- prompts.py: prompt templates and placeholder substitution
- provider.py: the provider interface and an OpenAI-compatible client
- parsing.py: best-effort JSON extraction from free-form model output
- workflows.py: draft, SEO metadata and content calendar workflows
"""
