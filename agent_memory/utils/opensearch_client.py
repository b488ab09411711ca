"""
OpenSearch vector store adapter for long-term memories.
"""

import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from .bedrock_embed import BedrockEmbed
from .config import OpenSearchConfig
from .errors import StorageError
from .filters import FilterExpression
from .logging_config import get_logger

logger = get_logger(__name__)

SearchResult = Tuple[Dict[str, Any], float]

# k-NN engines that apply a filter during the search, with the mapping from
# their cosinesimil score to cosine similarity
COSINE_FROM_SCORE = {
    'lucene': lambda score: 2 * score - 1,
    'faiss': lambda score: 2 - 1 / score,
}


class OpenSearchError(StorageError):
    """Custom exception for OpenSearch errors."""
    pass


class OpenSearchMemoryStore:
    """Memory documents in an OpenSearch k-NN index.

    Each document holds the memory text under ``content``, its embedding, and
    the sidecar metadata fields supplied by the caller. Search scores are
    cosine similarity; callers apply their own thresholds.
    """

    def __init__(self, config: OpenSearchConfig, embed: BedrockEmbed, client: Optional[OpenSearch] = None):
        """
        Initialize the memory store.

        Args:
            config: OpenSearchConfig instance with connection parameters
            embed: Embedding client used for documents and queries
            client: Preconfigured OpenSearch client (built from config if None)

        Raises:
            ValueError: If the configured k-NN engine cannot filter during search
        """
        if config.engine not in COSINE_FROM_SCORE:
            raise ValueError(f'Unsupported k-NN engine {config.engine!r}, expected one of {sorted(COSINE_FROM_SCORE)}')

        self.config = config
        self.embed = embed
        self.index_name = config.index_name
        self._to_cosine = COSINE_FROM_SCORE[config.engine]

        if client is None:
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
            endpoint = config.endpoint
            if '://' in endpoint:
                # Remove protocol if present
                endpoint = endpoint.split('://', 1)[1]

            client = OpenSearch(hosts=[{
                'host': endpoint,
                'port': config.port
            }],
                                http_auth=auth,
                                use_ssl=True,
                                verify_certs=True,
                                connection_class=RequestsHttpConnection)
        self.client = client

        logger.info(f'Initialized OpenSearch memory store for endpoint: {config.endpoint}')

    def create_index_if_not_exists(self) -> str:
        """
        Create the memory index if it doesn't exist.

        Returns:
            'exists', 'created' or 'failed'
        """
        try:
            if self.client.indices.exists(index=self.index_name):
                logger.debug(f'Index {self.index_name} already exists')
                return 'exists'

            index_body = {
                'mappings': {
                    'properties': {
                        'id': {
                            'type': 'keyword'
                        },
                        'content': {
                            'type': 'text'
                        },
                        'memoryType': {
                            'type': 'keyword'
                        },
                        'metadata': {
                            'type': 'text'
                        },
                        'userId': {
                            'type': 'keyword'
                        },
                        'createdAt': {
                            'type': 'text'
                        },
                        'embedding': {
                            'type': 'knn_vector',
                            'dimension': self.config.dimension,
                            'method': {
                                'name': 'hnsw',
                                'space_type': 'cosinesimil',
                                'engine': self.config.engine
                            }
                        }
                    }
                },
                'settings': {
                    'index': {
                        'knn': True,
                        'knn.algo_param.ef_search': 100
                    }
                }
            }

            response = self.client.indices.create(index=self.index_name, body=index_body)
            logger.info(f'Created index {self.index_name}')
            if not response.get('acknowledged', False):
                return 'failed'
            if self.config.service == 'aoss':
                logger.info(f'Waiting 15s for index {self.index_name} sync-up...')
                time.sleep(15)
            return 'created'
        except OpenSearchException as e:
            logger.error(f'Error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def store(self, content: str, metadata: Dict[str, Any], record_id: Optional[str] = None) -> str:
        """
        Embed and index one memory document.

        Args:
            content: Memory text
            metadata: Sidecar fields stored next to the text
            record_id: Document id (generated if None)

        Returns:
            The id of the indexed document

        Raises:
            OpenSearchError: If the backend is unreachable or rejects the write
        """
        record_id = record_id or str(uuid.uuid4())
        document = {'id': record_id, 'content': content, **metadata, 'embedding': self.embed.embed_document(content)}

        try:
            response = self.client.index(index=self.index_name, body=document, id=record_id)
        except OpenSearchException as e:
            logger.error(f'Error indexing memory document: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing memory document: {e}')
            raise OpenSearchError(f'Unexpected error indexing document: {e}')

        if response.get('result') not in ['created', 'updated']:
            logger.warning(f'Unexpected result indexing document: {response}')
            raise OpenSearchError(f'Document was not indexed: {response.get("result")}')

        logger.debug(f'Indexed memory document {record_id} in {self.index_name}')
        return response.get('_id', record_id)

    def embed_query(self, query_text: str) -> List[float]:
        return self.embed.embed_query(query_text)

    def search(self,
               query_text: str,
               filter_expression: Optional[FilterExpression],
               top_k: int,
               query_vector: Optional[List[float]] = None) -> List[SearchResult]:
        """
        Similarity search restricted by a metadata filter.

        The filter is applied inside the k-NN clause, so up to top_k documents
        that pass it are returned even when closer documents fail it. Scores
        are cosine similarity in [-1, 1]. A blank query lists the documents
        that pass the filter, each with a score of 1.0.

        Args:
            query_text: Text to search for
            filter_expression: Metadata predicate (None matches everything)
            top_k: Maximum number of results
            query_vector: Precomputed query embedding (computed if None)

        Returns:
            List of (document, score) ordered by descending score

        Raises:
            OpenSearchError: If the search fails
        """
        similarity_search = bool(query_text and query_text.strip())

        if similarity_search:
            if query_vector is None:
                query_vector = self.embed_query(query_text)
            knn = {'vector': query_vector, 'k': top_k}
            if filter_expression is not None:
                knn['filter'] = filter_expression.to_query()
            query = {'knn': {'embedding': knn}}
        else:
            filters = [filter_expression.to_query()] if filter_expression is not None else []
            query = {'constant_score': {'filter': {'bool': {'filter': filters}}, 'boost': 1.0}}

        search_body = {
            'size': top_k,
            'query': query,
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        try:
            response = self.client.search(index=self.index_name, body=search_body)
        except NotFoundError:
            logger.debug(f'Index {self.index_name} does not exist yet, no memories to search')
            return []
        except OpenSearchException as e:
            logger.error(f'Error performing memory search: {e}')
            raise OpenSearchError(f'Memory search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in memory search: {e}')
            raise OpenSearchError(f'Unexpected error in memory search: {e}')

        results = []
        for hit in response['hits']['hits']:
            document = dict(hit['_source'])
            document.setdefault('id', hit['_id'])
            score = float(hit.get('_score') or 0.0)
            if similarity_search and score > 0:
                score = self._to_cosine(score)
            results.append((document, score))

        results.sort(key=lambda result: result[1], reverse=True)
        logger.debug(f'Memory search returned {len(results)} results')
        return results[:top_k]

    def health_check(self) -> bool:
        try:
            response = self.client.indices.exists(index=self.index_name)
            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
