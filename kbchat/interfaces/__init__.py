"""Public interface definitions for all external collaborators.

Every external service (embedding server, LLM server, search engine) and the
task store are accessed only through the abstract base classes in this
package.  Concrete adapters live in ``kbchat/providers/`` and are wired
together in ``kbchat/main.py``; tests inject ``MagicMock(spec=...)`` doubles.
"""

from kbchat.interfaces.embedding_provider import IEmbeddingProvider
from kbchat.interfaces.llm_provider import ILLMProvider
from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.interfaces.task_store import ITaskStore

__all__ = [
    "IEmbeddingProvider",
    "ILLMProvider",
    "ISearchEngineProvider",
    "ITaskStore",
]
