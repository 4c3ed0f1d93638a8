# Classroom scoring demo: average, letter grade, attendance bonus, honors.

INPUT_STATE = {
    "student": {"name": "Ari"},
    "scores": [88, 92, 79, 95],
    "attendance": 0.93,
}

RULES_CONFIG = {
    "rules": [
        {
            "name": "summarize",
            "priority": 1,
            "if": "scores.length > 0",
            "then": {
                "summary.average": "{{ scores.reduce((a, b) => a + b, 0) / scores.length }}",
                "summary.best": "{{ scores.reduce((m, s) => s > m ? s : m, 0) }}",
                "summary.passing": "{{ scores.filter(s => s >= 80).length }}",
            },
        },
        {
            "name": "letter_grade",
            "priority": 2,
            "if": "typeof summary_average === 'number'",
            "then": {
                "summary.grade": (
                    "{{ summary.average >= 90 ? 'A' : summary.average >= 80 ? 'B' "
                    ": summary.average >= 70 ? 'C' : 'F' }}"
                ),
            },
        },
        {
            "name": "attendance_bonus",
            "priority": 3,
            "if": "attendance >= 0.9 && summary.grade !== 'A'",
            "then": {
                "summary.bonus_applied": True,
                "summary.final": "{{ summary.average + 2 }}",
            },
        },
        {
            "name": "honor_roll",
            "priority": 4,
            "if": "summary_final >= 90",
            "then": {"student.honors": "{{ student.name + ' - Honor Roll' }}"},
        },
        {
            "name": "label",
            "priority": 5,
            "then": {"summary.label": "Score: {{ summary.final }}"},
        },
    ],
}
