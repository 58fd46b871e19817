"""
Database module for the question bank
Using SQLite with SQLAlchemy ORM
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tronde.config import DATABASE_URL

# Database setup
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class Question(Base):
    """Model for storing individual questions"""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(Text, nullable=False)
    type = Column(String(10), default="mcq", index=True)

    # Options for mcq/msq, empty for sa
    option_a = Column(Text, nullable=True)
    option_b = Column(Text, nullable=True)
    option_c = Column(Text, nullable=True)
    option_d = Column(Text, nullable=True)
    correct_option = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)

    # Classification
    subject = Column(String(50), default="toan_hoc", index=True)
    chapter = Column(String(100), nullable=True, index=True)
    lesson = Column(String(100), nullable=True, index=True)
    grade = Column(String(20), nullable=True)
    difficulty = Column(String(20), default="medium")

    # Metadata
    source = Column(String(255), nullable=True)  # manual, ai, import
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def init_db():
    """Create all tables"""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def question_to_dict(q: Question) -> dict:
    return {
        "id": q.id,
        "type": q.type,
        "question": q.question,
        "option_a": q.option_a,
        "option_b": q.option_b,
        "option_c": q.option_c,
        "option_d": q.option_d,
        "correct_option": q.correct_option,
        "explanation": q.explanation,
        "subject": q.subject,
        "chapter": q.chapter,
        "lesson": q.lesson,
        "grade": q.grade,
        "difficulty": q.difficulty,
        "source": q.source,
        "created_at": q.created_at.isoformat() if q.created_at else None,
    }


class QuestionCRUD:
    @staticmethod
    def create(db: Session, **kwargs) -> Question:
        question = Question(**kwargs)
        db.add(question)
        db.commit()
        db.refresh(question)
        return question

    @staticmethod
    def get(db: Session, question_id: int) -> Optional[Question]:
        return db.query(Question).filter(Question.id == question_id).first()

    @staticmethod
    def get_many(db: Session, question_ids: List[int]) -> List[Question]:
        """Fetch questions keeping the requested order; unknown ids are skipped"""
        rows = db.query(Question).filter(Question.id.in_(question_ids)).all()
        by_id = {q.id: q for q in rows}
        return [by_id[qid] for qid in question_ids if qid in by_id]

    @staticmethod
    def _filtered(
        db: Session,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        lesson: Optional[str] = None,
        question_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
    ):
        query = db.query(Question)

        if subject:
            query = query.filter(Question.subject == subject)
        if chapter:
            query = query.filter(Question.chapter == chapter)
        if lesson:
            query = query.filter(Question.lesson == lesson)
        if question_type:
            query = query.filter(Question.type == question_type)
        if difficulty:
            query = query.filter(Question.difficulty == difficulty)
        if search:
            query = query.filter(Question.question.contains(search))
        return query

    @staticmethod
    def get_all(db: Session, skip: int = 0, limit: int = 100, **filters) -> List[Question]:
        query = QuestionCRUD._filtered(db, **filters)
        return query.order_by(Question.created_at.desc(), Question.id.desc()).offset(skip).limit(limit).all()

    @staticmethod
    def count(db: Session, **filters) -> int:
        return QuestionCRUD._filtered(db, **filters).count()

    @staticmethod
    def delete(db: Session, question_id: int) -> bool:
        question = db.query(Question).filter(Question.id == question_id).first()
        if question:
            db.delete(question)
            db.commit()
            return True
        return False

    @staticmethod
    def bulk_create(db: Session, questions: List[dict]) -> List[Question]:
        db_questions = [Question(**q) for q in questions]
        db.add_all(db_questions)
        db.commit()
        for q in db_questions:
            db.refresh(q)
        return db_questions
