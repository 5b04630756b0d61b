# Students of the current class, known before anyone has signed up.
CURRENT_STUDENTS = [
    {"number": "2024001", "name": "Kim Cheolsu"},
    {"number": "2024002", "name": "Lee Younghee"},
    {"number": "2024003", "name": "Park Minsu"},
]


def get_student_label(number: str, name: str) -> str:
    return f"{number} - {name}"
