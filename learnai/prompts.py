from __future__ import annotations

import dataclasses
import typing as t

if t.TYPE_CHECKING:
    from .models import Exam, ExamSeries


@dataclasses.dataclass(frozen=True)
class DifficultyConfig:
    label: str
    description: str
    complexity: str
    cognitive_level: str


DIFFICULTY_CONFIGS: dict[int, DifficultyConfig] = {
    1: DifficultyConfig(
        label="Foundation",
        description="Basic understanding - covers fundamental concepts",
        complexity="Focus on recall and basic understanding. Questions should test foundational knowledge and basic concepts.",
        cognitive_level="Remember and Understand",
    ),
    2: DifficultyConfig(
        label="Beginner",
        description="Slightly more challenging - requires basic application",
        complexity="Increase complexity by 15-20%. Include basic application questions and simple problem-solving.",
        cognitive_level="Understand and Apply",
    ),
    3: DifficultyConfig(
        label="Intermediate",
        description="Moderate difficulty - requires deeper understanding",
        complexity="Increase complexity by 35-40%. Require deeper understanding, analysis, and multi-step reasoning.",
        cognitive_level="Apply and Analyze",
    ),
    4: DifficultyConfig(
        label="Advanced",
        description="Challenging - requires critical thinking",
        complexity="Increase complexity by 55-60%. Include critical thinking, synthesis of concepts, and complex problem-solving.",
        cognitive_level="Analyze and Evaluate",
    ),
    5: DifficultyConfig(
        label="Expert",
        description="Very challenging - requires mastery",
        complexity="Increase complexity by 75-80%. Require mastery-level understanding, creative application, and expert-level reasoning.",
        cognitive_level="Evaluate and Create",
    ),
    6: DifficultyConfig(
        label="Master",
        description="Extremely challenging - professional level",
        complexity="Increase complexity by 90-95%. Professional-level questions requiring deep expertise and innovative thinking.",
        cognitive_level="Create and Innovate",
    ),
    7: DifficultyConfig(
        label="Genius",
        description="Ultimate challenge - if you ace this, you're an expert",
        complexity="Maximum complexity (100%+). If someone scores 80%+ here, they should be able to ace any standard exam on this topic.",
        cognitive_level="Master and Innovate",
    ),
}

MAX_DIFFICULTY_LEVEL = max(DIFFICULTY_CONFIGS)


def difficulty_config(level: int) -> DifficultyConfig:
    try:
        return DIFFICULTY_CONFIGS[level]
    except KeyError:
        raise ValueError(f"Difficulty level must be between 1 and {MAX_DIFFICULTY_LEVEL}, got {level!r}") from None


def _language_rule(language_name: str) -> str:
    return (
        "CRITICAL RULES:\n"
        f"- **Primary Language:** Your entire response MUST be in {language_name}. This is a strict requirement."
    )


def build_solver_prompt(problem_text: str, language_name: str) -> str:
    return f"""
You are an expert tutor in math, biology, physics, and chemistry. Analyze the uploaded document and:
1. Identify ALL problems.
2. For EACH problem, provide a detailed step-by-step solution. Explain to the user how to solve the problem correctly.
3. Format your entire response as a single, valid JSON array with this exact structure:
4. For "solution", state the correct answer only. If it is a multiple choice question, only select the correct choice (e.g., A. -5)
[
  {{
    "id": "placeholder_id",
    "question": "The exact problem as written",
    "solution": "Final answer (e.g., x = 4, y = 2x + 3, etc.)",
    "difficulty": "Easy|Medium|Hard",
    "topic": "Subject area (e.g., Algebra, Calculus, Geometry)",
    "steps": [
      {{
        "step": 1,
        "description": "Brief description of what we're doing",
        "equation": "Mathematical equation for this step",
        "explanation": "Detailed explanation of why we do this step"
      }}
    ]
  }}
]

UPLOADED PROBLEMS DOCUMENT:
{problem_text}

{_language_rule(language_name)}
- The output MUST be only a valid JSON array. Do not include any other text, explanations, or markdown formatting like ```json.
- If no problems are found, return an empty array [].""".strip()


def build_learning_path_prompt(topic: str, language_name: str) -> str:
    return f"""You are an expert educational curriculum designer. Create a comprehensive learning path for the topic: "{topic}".

Generate a structured learning path with 5-8 progressive steps that build upon each other. Each step should be designed to help a student master the topic systematically.

Format your response as a JSON object with this exact structure:

{{
  "id": "unique_id",
  "topic": "{topic}",
  "totalEstimatedTime": "X hours Y minutes",
  "difficulty": "Beginner|Intermediate|Advanced|Mixed",
  "description": "Brief overview of what the student will learn",
  "steps": [
    {{
      "step": 1,
      "title": "Step title",
      "description": "Detailed description of what this step covers",
      "estimatedTime": "X min",
      "difficulty": "Beginner|Intermediate|Advanced",
      "prerequisites": ["Previous step titles if any"],
      "keyTopics": ["Topic 1", "Topic 2", "Topic 3"],
      "practiceExercises": ["Exercise 1", "Exercise 2", "Exercise 3"]
    }}
  ]
}}
{_language_rule(language_name)}

IMPORTANT RULES:
- Return ONLY valid JSON, no additional text or markdown
- Create 5-8 progressive steps that build logically
- Each step should have 3-5 key topics and 3-5 practice exercises
- Estimated times should be realistic (15-90 minutes per step)
- Prerequisites should reference actual previous step titles
- Make the learning path comprehensive but achievable
- Difficulty should progress naturally from easier to harder concepts
- Include practical, hands-on exercises for each step"""


def build_learning_material_prompt(
    topic: str,
    step_title: str,
    step_description: str,
    key_topics: list[str],
    language_name: str,
) -> str:
    return f"""You are an expert educational content creator. Generate comprehensive learning material for:

Topic: "{topic}"
Learning Step: "{step_title}"
Description: "{step_description}"
Key Topics to Cover: {", ".join(key_topics)}

Create detailed, educational content that helps students understand these concepts thoroughly.

Format your response as a JSON object with this exact structure:

{{
  "id": "unique_id",
  "stepTitle": "{step_title}",
  "topic": "{topic}",
  "introduction": "Engaging introduction that explains what the student will learn",
  "sections": [
    {{
      "title": "Section title",
      "content": "Detailed explanation of the concept (2-3 paragraphs)",
      "examples": [{{"label": "Short example name", "detail": "The worked example itself"}}],
      "keyPoints": ["Key point 1", "Key point 2", "Key point 3"]
    }}
  ],
  "summary": "Comprehensive summary of what was learned",
  "nextSteps": ["What to do next", "How to practice", "Further reading"],
  "estimatedReadTime": "X minutes"
}}
{_language_rule(language_name)}

IMPORTANT RULES:
- Return ONLY valid JSON, no additional text or markdown
- Create 3-5 sections covering different aspects of the topic
- Each section should have detailed content (150-300 words)
- Every example MUST be an object with exactly the keys "label" and "detail"
- Include practical examples and real-world applications
- Key points should be concise and memorable
- Estimated read time should be realistic (5-20 minutes)"""


def build_quiz_prompt(topic: str, step_title: str, language_name: str) -> str:
    return f"""You are an expert educator creating quiz questions for the topic: "{topic}", specifically for the learning step: "{step_title}".

Create 3-5 multiple choice questions that test understanding of this specific step. Questions should be educational and help reinforce learning.

Format your response as a JSON array with this exact structure:

[
  {{
    "id": "unique_id",
    "question": "Clear, specific question about the topic",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correctAnswer": 0,
    "explanation": "Detailed explanation of why this answer is correct and why others are wrong",
    "difficulty": "Easy|Medium|Hard"
  }}
]

{_language_rule(language_name)}

IMPORTANT RULES:
- Return ONLY valid JSON, no additional text or markdown
- Create 3-5 questions per topic
- Each question should have exactly 4 options
- correctAnswer should be the index (0-3) of the correct option
- Explanations should be educational and help students learn
- Questions should be specific to the step topic, not general knowledge
- Avoid trick questions - focus on genuine understanding"""


def build_exam_prompt(
    description: str,
    number_of_exams: int,
    has_uploaded_files: bool,
    level: int,
    language_name: str = "English",
) -> str:
    cfg = difficulty_config(level)
    analyze = (
        "CAREFULLY ANALYZE the uploaded exam/study materials first. Study the question types, difficulty level, "
        "subject matter, cognitive complexity, and assessment style of the original exam."
        if has_uploaded_files
        else ""
    )
    if has_uploaded_files:
        strategy = f"""CRITICAL ANALYSIS REQUIREMENTS:
1. CONTENT ANALYSIS: Identify all topics, concepts, and subject areas covered in the uploaded exam
2. STYLE ANALYSIS: Study the question format, wording style, and presentation approach
3. DIFFICULTY ANALYSIS: Assess the cognitive level, question count, and time allocation from the original exam
4. PATTERN RECOGNITION: Identify question patterns, common structures, and assessment methods
5. SCOPE ANALYSIS: Understand the breadth and depth of content coverage

PROGRESSIVE DIFFICULTY STRATEGY:
- Base ALL questions on content and concepts from the uploaded exam
- Maintain the same subject matter and topic areas across all levels
- MATCH the question count and time allocation style of the original exam
- USE the same question types found in the uploaded exam
- Level {level} should be {cfg.complexity}
- Ensure questions test the same learning objectives but at Level {level} complexity
- Use the cognitive level: {cfg.cognitive_level}"""
    else:
        strategy = f"""DIFFICULTY PROGRESSION STRATEGY:
- Create questions appropriate for Level {level} difficulty
- Use standard academic question counts (15-25 questions)
- Set appropriate time limits (45-90 minutes typical)
- Include variety of question types (multiple choice, short answer, essay)
- Focus on {cfg.cognitive_level} cognitive skills
- {cfg.complexity}
- Ensure educational value and clear learning objectives"""

    return f"""You are an expert exam creator and educational assessment specialist. {analyze}

Create a comprehensive practice exam for LEVEL {level} of {number_of_exams} total exams with PROGRESSIVE DIFFICULTY.

EXAM DESCRIPTION: "{description}"

DIFFICULTY LEVEL {level}: {cfg.label}
COMPLEXITY INSTRUCTION: {cfg.complexity}
COGNITIVE LEVEL: {cfg.cognitive_level}
DESCRIPTION: {cfg.description}

EXAM REQUIREMENTS:
- Number of questions: typically 15-25 questions
- Time limit: CALCULATE appropriate time based on question count and complexity (typically 1-3 minutes per question)
- Difficulty Level: {level}/{MAX_DIFFICULTY_LEVEL} ({cfg.label})

{strategy}

FORMAT YOUR RESPONSE AS JSON:

{{
  "title": "Level {level}: {cfg.label} - [Subject] Practice Exam",
  "description": "Level {level} exam focusing on {cfg.description}",
  "instructions": "Clear instructions for taking this Level {level} exam",
  "questions": [
    {{
      "id": "q1",
      "question": "Question text appropriate for Level {level} difficulty",
      "type": "multiple-choice|true-false|short-answer|essay|fill-blank|matching",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswer": "Correct answer or option index (0-3 for multiple choice)",
      "points": 5,
      "explanation": "Detailed explanation of the correct answer and why others are wrong",
      "difficulty": "Easy|Medium|Hard|Very Hard|Expert"
    }}
  ],
  "totalPoints": 100,
  "difficultyLevel": {level},
  "difficultyLabel": "{cfg.label}"
}}

{_language_rule(language_name)}
- Return ONLY valid JSON, no additional text or markdown
- Include "options" only for multiple-choice questions
- For multiple choice questions, correctAnswer should be the index (0-3)
- For other question types, correctAnswer should be the actual answer text
- Points should total approximately 100 points across all questions
- Each question should have a clear, educational explanation
- Make questions appropriately challenging for Level {level}
- Focus on {cfg.cognitive_level} cognitive skills"""


def _mm_ss(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def build_performance_analysis_prompt(series: "ExamSeries", completed: list["Exam"]) -> str:
    scores = [e.score or 0 for e in completed]
    times = [e.time_taken or 0 for e in completed]
    avg_score = round(sum(scores) / len(scores))
    avg_time = round(sum(times) / len(times))

    levels: list[str] = []
    for e in completed:
        allotted = e.estimated_time * 60
        taken = e.time_taken or 0
        efficiency = round(allotted / taken * 100) if taken > 0 else 0
        levels.append(
            f"Level {e.difficulty_level} ({e.title}):\n"
            f"- Score: {e.score or 0}%\n"
            f"- Time: {_mm_ss(taken)} / {_mm_ss(allotted)} allocated\n"
            f"- Questions: {len(e.questions)}\n"
            f"- Time Efficiency: {efficiency}%"
        )
    per_level = "\n\n".join(levels)

    return f"""You are an expert educational analyst and learning coach. Analyze this student's exam performance and provide detailed, actionable improvement suggestions.

EXAM SERIES: {series.topic}
DESCRIPTION: {series.description}

PERFORMANCE SUMMARY:
- Completed Exams: {len(completed)}/{series.total_exams}
- Average Score: {avg_score}%
- Score Range: {min(scores)}% - {max(scores)}%
- Average Time: {_mm_ss(avg_time)}

DETAILED PERFORMANCE BY LEVEL:
{per_level}

ANALYSIS REQUIREMENTS:
1. Performance Trends: Analyze score progression across difficulty levels
2. Time Management: Evaluate time efficiency and pacing
3. Difficulty Adaptation: How well the student adapts to increasing difficulty
4. Strengths: Identify areas of strong performance
5. Weaknesses: Pinpoint specific areas needing improvement
6. Study Strategy: Recommend specific study approaches
7. Next Steps: Suggest which exams to retake or focus on

Respond in plain text with the headings PERFORMANCE ANALYSIS, STRENGTHS, AREAS FOR IMPROVEMENT, STUDY RECOMMENDATIONS, NEXT STEPS and PERSONALIZED TIPS. Make the analysis detailed, actionable, and encouraging."""
