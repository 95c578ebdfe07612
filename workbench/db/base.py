"""
SQLAlchemy ORM 基类定义

所有数据库模型都继承自这个 Base 类，Base.metadata 收集全部表结构，
用于开发环境自动建表和 Alembic 生成迁移。
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """声明式基类"""
    pass
