import pytest

from noteforge.graph import GraphStore
from noteforge.models import Block, Page, page_id_for_title


class GraphBuilder:
    """Small helper for building graph stores in tests."""

    def __init__(self):
        self.store = GraphStore()

    def page(self, title, **fields):
        page = Page(id=page_id_for_title(title), title=title, **fields)
        self.store.insert_page(page)
        return page.id

    def block(self, page_id, block_id, contents="", parent=None, **fields):
        block = Block(id=block_id, page_id=page_id, contents=contents, **fields)
        self.store.insert_block(block, parent)
        return block_id

    def build(self):
        self.store.freeze()
        return self.store


@pytest.fixture
def builder():
    return GraphBuilder()
