"""
数据库模块

- base.py    : SQLAlchemy 基类定义，所有 ORM 模型都继承自它
- session.py : 数据库会话管理（连接池、异步会话工厂）

使用 SQLAlchemy 2.0 异步引擎：PostgreSQL 走 asyncpg，本地开发和测试可用 aiosqlite。
"""
