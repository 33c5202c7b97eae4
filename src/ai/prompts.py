from typing import List

from src.models.schemas import SearchResult
from src.utils.logging import get_logger

logger = get_logger(__name__)

TOKENS_PER_CHAR = 0.25  # Rough estimate
MIN_TRUNCATED_CHARS = 200
CONTENT_PREVIEW_CHARS = 800
TRUNCATED_PREVIEW_CHARS = 100


class ChatPrompts:
    """Prompt templates for the code notes chat assistant."""

    # Used when the turn was answered with retrieved note context
    CONTEXT_SYSTEM_PROMPT = """You are an AI assistant helping with code notes and programming concepts.
You should provide clear, concise, and helpful responses. When explaining code concepts, use examples when appropriate.
Be encouraging and educational in your responses.

RESPONSE FORMATTING:
- Use clear headings (##) to organize different sections
- Use bullet points or numbered lists for key information
- When explaining code, use proper code blocks with syntax highlighting
- For file analysis, organize information into logical sections like:
  ## Purpose
  ## Key Components
  ## Main Functions/Classes
  ## Structure
- Present information in a conversational, readable way
- Focus on the actual content and functionality rather than technical metadata

{prompt}"""

    GENERAL_SYSTEM_PROMPT = """You are an AI assistant helping with programming concepts and general coding questions.
Provide clear, concise, and educational responses. Use examples when appropriate to illustrate concepts.
Be encouraging and focus on helping the user learn and understand programming concepts.

RESPONSE FORMATTING:
- Use clear headings (##) to organize different sections
- Use bullet points or numbered lists for key information
- When explaining code, use proper code blocks with syntax highlighting
- Provide practical examples and best practices
- Keep explanations accessible and educational

User question: {prompt}"""

    SEMANTIC_PROMPT = """You are an AI assistant for Code Notes, helping users with their programming files and notes.

RELEVANT FILES ({file_count} files found):
{context}

USER QUERY: "{query}"

INSTRUCTIONS:
- Use the relevant files above to provide context-aware responses
- Reference specific files by their paths when relevant
- Explain code concepts using examples from the user's actual files
- If the files contain relevant code, explain how it works
- Suggest improvements or modifications based on the existing code
- Be specific about which files contain relevant information
- Help the user understand their codebase structure and patterns

Please provide a helpful response based on the user's query and the relevant files found."""

    CONTEXT_FILE_TEMPLATE = """File {index}: {file_path}
Type: {file_type} | Notebook: {notebook} | Match: {match:.1f}%
Content:
{content}
---"""

    def get_system_prompt(self, prompt: str, with_context: bool) -> str:
        """Wrap a user prompt in the context-aware or general system prompt."""
        template = self.CONTEXT_SYSTEM_PROMPT if with_context else self.GENERAL_SYSTEM_PROMPT
        return template.format(prompt=prompt)

    def construct_semantic_prompt(
        self, query: str, context_files: List[SearchResult], max_tokens: int = 3500
    ) -> str:
        """Build a prompt that embeds the retrieved files; the bare query when none."""
        if not context_files:
            return query

        files = optimize_context_for_tokens(context_files, max_tokens)

        sections = []
        for index, file in enumerate(files, start=1):
            if file.content:
                content = file.content[:CONTENT_PREVIEW_CHARS]
                if len(file.content) > CONTENT_PREVIEW_CHARS:
                    content += "..."
            else:
                content = file.preview

            sections.append(
                self.CONTEXT_FILE_TEMPLATE.format(
                    index=index,
                    file_path=file.file_path,
                    file_type=file.file_type,
                    notebook=file.notebook,
                    match=file.similarity * 100,
                    content=content,
                )
            )

        return self.SEMANTIC_PROMPT.format(
            file_count=len(files), context="\n\n".join(sections), query=query
        )


def optimize_context_for_tokens(
    context_files: List[SearchResult], max_tokens: int = 4000
) -> List[SearchResult]:
    """Keep the most similar files that fit the token budget.

    Files are taken in descending similarity. The first file that does not fit
    is truncated and kept only if at least 200 characters of it fit; nothing
    after it is considered.
    """
    total_tokens = 0.0
    selected: List[SearchResult] = []

    for file in sorted(context_files, key=lambda f: f.similarity, reverse=True):
        text = file.content or file.preview or ""
        estimated_tokens = len(text) * TOKENS_PER_CHAR

        if total_tokens + estimated_tokens <= max_tokens:
            selected.append(file)
            total_tokens += estimated_tokens
            continue

        max_chars = int((max_tokens - total_tokens) / TOKENS_PER_CHAR)
        if max_chars > MIN_TRUNCATED_CHARS:
            selected.append(
                file.model_copy(
                    update={
                        "content": file.content[:max_chars] + "...[truncated]"
                        if file.content
                        else file.preview,
                        "preview": file.preview[: min(TRUNCATED_PREVIEW_CHARS, max_chars)] + "...",
                    }
                )
            )
        break

    logger.debug(
        "Optimized context",
        extra_fields={
            "files_in": len(context_files),
            "files_out": len(selected),
            "estimated_tokens": round(total_tokens),
        },
    )
    return selected


# Create global instance
PROMPTS = ChatPrompts()
