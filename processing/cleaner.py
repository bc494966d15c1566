"""
Text Cleaner
页面正文清洗模块
"""
import re
import html
from typing import Iterable, Optional


class TextCleaner:
    """
    文本清洗器
    保留段落结构 (换行), 压缩多余空白
    """

    INLINE_SPACES = re.compile(r'[ \t\r\f\v\u00a0]+')
    MULTIPLE_SPACES = re.compile(r'\s+')
    MULTIPLE_NEWLINES = re.compile(r'\n{3,}')
    ZERO_WIDTH = re.compile(r'[\u200b\u200c\u200d\ufeff]')

    def __init__(
        self,
        unescape: bool = True,
        keep_paragraphs: bool = True,
        max_length: Optional[int] = None,
    ):
        """
        Args:
            unescape: 是否解码 HTML 实体
            keep_paragraphs: 保留换行 (False 时压缩为单行)
            max_length: 最大文本长度
        """
        self.unescape = unescape
        self.keep_paragraphs = keep_paragraphs
        self.max_length = max_length

    def clean(self, text: str) -> str:
        if not text:
            return ""

        if self.unescape:
            text = html.unescape(text)
        text = self.ZERO_WIDTH.sub('', text)

        if self.keep_paragraphs:
            lines = [self.INLINE_SPACES.sub(' ', line).strip() for line in text.split('\n')]
            text = '\n'.join(lines)
            text = self.MULTIPLE_NEWLINES.sub('\n\n', text)
        else:
            text = self.MULTIPLE_SPACES.sub(' ', text)
        text = text.strip()

        if self.max_length and len(text) > self.max_length:
            text = text[:self.max_length] + "..."
        return text

    def join_blocks(self, blocks: Iterable[str]) -> str:
        """把多个文本块按段落拼接, 丢弃空块"""
        parts = [self.clean(block) for block in blocks]
        return self.clean('\n\n'.join(part for part in parts if part))


def clean_text(text: str, **kwargs) -> str:
    """便捷函数: 清洗文本"""
    return TextCleaner(**kwargs).clean(text)


def clean_inline(text: str, max_length: Optional[int] = None) -> str:
    """便捷函数: 清洗为单行文本 (标题/描述)"""
    return TextCleaner(keep_paragraphs=False, max_length=max_length).clean(text)
