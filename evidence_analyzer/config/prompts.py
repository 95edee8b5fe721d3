"""Prompt templates for the extraction and reasoning phases."""

# Note: curly braces must be escaped as {{ }} for LangChain templates
JSON_ONLY_INSTRUCTION = """
CRITICAL: Your final answer MUST be a single valid JSON object.
- Do NOT use markdown code blocks.
- No text after the JSON."""

EXTRACTION_SYSTEM_PROMPT = """You are a forensic evidence extraction system. Analyze each file and extract:
1. File type and format
2. All timestamps and dates (from metadata AND content)
3. Key claims, statements, or events, with the speaker when one is identifiable
4. Location data (GPS, addresses mentioned)
5. People, organizations, or entities mentioned
6. Any technical metadata (camera model, software used, etc.)

Be thorough and precise. Extract EVERYTHING that could be forensically relevant.
Do not compare files against each other; that happens in a later step.
""" + JSON_ONLY_INSTRUCTION

EXTRACTION_USER_PROMPT = """Extract structured data from the {file_count} evidence file(s) attached below.

EXTRACTED FILE METADATA:
---
{metadata_json}
---

Respond with ONLY this JSON structure (no other text):
{{
  "files": [
    {{
      "fileName": "exact file name as given",
      "category": "image|video|audio|document",
      "claims": [
        {{
          "statement": "One atomic assertion made by this file",
          "timestamp": "ISO-8601 if the claim is dated, else null",
          "speaker": "Who makes the claim, or null",
          "context": "Short surrounding context"
        }}
      ],
      "timestamps": ["..."],
      "entities": ["..."],
      "locations": ["..."],
      "metadata": {{}}
    }}
  ]
}}"""

REASONING_SYSTEM_PROMPT = """You are a forensic evidence analyst. You have extracted data from multiple files.

YOUR TASK:
1. Cross-reference all timestamps across files - look for inconsistencies
2. Compare claims from DIFFERENT files - report a contradiction only for a real semantic conflict, never for different wording of the same fact
3. Build a timeline of events, ordered by timestamp where known and by narrative order otherwise
4. Identify evidence tampering indicators (metadata mismatches, impossible sequences)
5. Rate the credibility of each side of a contradiction using the source ranking below
6. Rate contradiction severity by materiality: minor, medium, high, critical
7. Calculate confidence scores in [0, 1]: overall, metadata, content
8. Provide a one-paragraph final verdict

SOURCE CREDIBILITY RANKING (apply consistently):
{credibility_table}

SHOW YOUR THINKING PROCESS as numbered steps ("Step 1: ...", "Step 2: ...") before the JSON.
""" + JSON_ONLY_INSTRUCTION

REASONING_USER_PROMPT = """EXTRACTED DATA:
{extraction_json}

Return a JSON object with:
{{
  "timeline": [
    {{
      "datetime": "ISO-8601, or the best wording available if approximate",
      "event": "What happened",
      "sources": ["file names"],
      "confidence": "very_high|high|medium|low",
      "reasoning": "Why this confidence level"
    }}
  ],
  "contradictions": [
    {{
      "id": "C1",
      "severity": "minor|medium|high|critical",
      "claim_a": {{"statement": "...", "source": "file name", "credibility": "low|medium|high|very_high"}},
      "claim_b": {{"statement": "...", "source": "other file name", "credibility": "low|medium|high|very_high"}},
      "analysis": "Why these claims conflict",
      "verdict": "Which claim is more credible and why",
      "confidence": 0.0
    }}
  ],
  "tamperingIndicators": [
    {{"type": "...", "description": "...", "severity": "minor|medium|high|critical", "evidence": "..."}}
  ],
  "confidenceScores": {{"overall": 0.0, "metadata": 0.0, "content": 0.0}},
  "verdict": "One-paragraph summary verdict",
  "reasoning": "Short justification of the verdict"
}}"""
