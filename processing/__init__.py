"""
Processing Module
内容处理模块 - 清洗、抽取、质量评估
"""
from .cleaner import TextCleaner, clean_text, clean_inline
from .extractor import (
    ContentExtractor,
    READING_WORDS_PER_MINUTE,
    classify_audio,
    classify_video,
    count_words,
    reading_time,
    youtube_video_id,
)
from .quality import QualityRules, assess_quality, link_density

__all__ = [
    # Cleaner
    "TextCleaner",
    "clean_text",
    "clean_inline",
    # Extractor
    "ContentExtractor",
    "READING_WORDS_PER_MINUTE",
    "classify_audio",
    "classify_video",
    "count_words",
    "reading_time",
    "youtube_video_id",
    # Quality
    "QualityRules",
    "assess_quality",
    "link_density",
]
