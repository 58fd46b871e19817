import os
import random
import tempfile

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="tronde-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'question_bank.db')}"
os.environ["TRONDE_SETTINGS_FILE"] = os.path.join(_TMP_DIR, "ai_settings.json")


@pytest.fixture
def rng():
    return random.Random(20240915)


@pytest.fixture
def mcq():
    return {
        "id": "test-1",
        "type": "mcq",
        "question": "What is 2+2?",
        "option_a": "3",
        "option_b": "4",
        "option_c": "5",
        "option_d": "6",
        "correct_option": "B",
    }


@pytest.fixture
def mixed_questions(mcq):
    return [
        mcq,
        {
            "id": "q-2",
            "type": "mcq",
            "question": "Nghiệm của phương trình $x - 1 = 0$ là",
            "option_a": "$x = 0$",
            "option_b": "$x = -1$",
            "option_c": "$x = 1$",
            "option_d": "$x = 2$",
            "correct_option": "C",
        },
        {
            "id": "q-3",
            "type": "msq",
            "question": "Cho hàm số $y = x^2$. Xét tính đúng sai của các mệnh đề sau",
            "option_a": "Hàm số đồng biến trên $(0; +\\infty)$",
            "option_b": "Đồ thị đi qua gốc tọa độ",
            "option_c": "Hàm số có giá trị nhỏ nhất bằng 1",
            "option_d": "Đồ thị nhận trục tung làm trục đối xứng",
            "correct_option": "A,B,D",
        },
        {
            "id": "q-4",
            "type": "sa",
            "question": "Tính $3 \\cdot 7$",
            "correct_option": "21",
        },
    ]
