from enum import Enum


class QuestionLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class ReviewMode(str, Enum):
    CREATE = "create"  # новые вопросы из ответа модели
    UPDATE = "update"  # правка текстов существующих вопросов


class ReviewEventKind(str, Enum):
    QUESTION_SAVED = "question_saved"
    BATCH_SAVED = "batch_saved"
