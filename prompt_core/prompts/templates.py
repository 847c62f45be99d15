"""
Prompt templates for game generation.

Two variants share the same skeleton: the current game code in a fenced
``html`` block followed by the user's request. ``create`` asks for a bare
document, ``iterate`` for a short rationale and then the document.
"""

# Placeholder rendered in place of an empty artifact
no_artifact_placeholder = "No game code provided yet"

# Current game code, embedded verbatim
artifact_block_template = """Current game code:
```html
{artifact}
```"""

# Create mode: single complete document, no prose
create_template = """You are {generator}. Create a complete, playable game based on this description: "{instruction}"

{artifact_block}

Requirements:
{requirements}

Game Description: {instruction}

Respond with ONLY the complete HTML document inside a single ```html fenced block. Do not add explanations before or after it. The document must start with <!DOCTYPE html>. {closing} The code should be ready to run immediately."""

# Iterate mode: rationale, then one fenced block with the full document
iterate_template = """You are a helpful AI assistant specialized in creating and modifying HTML5 games. You help users create, update, and improve their games based on their requests.

{artifact_block}

Guidelines:
1. When creating games, provide complete HTML files with embedded CSS and JavaScript
2. Use modern JavaScript features and HTML5 canvas when appropriate
3. Make games interactive and fun
4. Include proper styling and animations
5. Keep code clean and well-commented
6. For modifications, explain what you're changing and why
7. Always respond in a friendly, encouraging tone
8. If asked to create a new game, provide a complete working example

Required output format:
- First, a short explanation (2-4 sentences) of what you changed and why.
- Then the COMPLETE updated HTML document, starting with <!DOCTYPE html>, in exactly one ```html fenced block.
- Nothing after the fenced block.

User's request: {instruction}"""

# One transcript line
transcript_line_template = "{role}: {content}"

# Separator between transcript lines
transcript_separator = "\n\n"

# Transcript prefix followed by the instructional template
history_prefix_template = """{transcript}

User: {prompt}"""

# Role labels used when flattening the transcript
role_labels = {
    "user": "User",
    "assistant": "Assistant",
    "system": "System",
}
