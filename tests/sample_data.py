import json

CSV_TEXT = "name,age\nana,30\nbo,\ncy,41\n"

AUDIT_JSON = json.dumps(
    {
        "actions": [
            {
                "type": "missing_values",
                "title": "Fill ages",
                "description": "One row has no age.",
                "impactedRows": 1,
                "suggestion": "Fill empty age with 0",
            },
            {
                "type": "formatting",
                "title": "Capitalise names",
                "description": "Names are lower case.",
                "impactedRows": 3,
                "suggestion": "Capitalise the first letter of every name",
            },
        ],
        "insights": [
            {"title": "Sparse ages", "description": "One age is missing.", "importance": "High"},
        ],
    }
)

CLEANED_JSON = json.dumps(
    [
        {"name": "ana", "age": 30},
        {"name": "bo", "age": 0},
        {"name": "cy", "age": 41},
    ]
)
