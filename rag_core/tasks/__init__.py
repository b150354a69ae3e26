"""离线任务：新闻文章切块与向量库初始化。"""

from .ingest import NewsArticle, articles_to_chunks, load_articles, populate_database

__all__ = ["NewsArticle", "articles_to_chunks", "load_articles", "populate_database"]
