"""
gene_mapping.py

Entry point of the gene mapper. GeneMapping reads the configuration, creates the
configured mapping core and maps gene mentions, whole documents or single names to gene
database ids.

Command line usage:

    python -m agr_gene_mapper.gene_mapping -c gene_mapping.properties "TNF-alpha receptor 2" "mTOR"
"""

from __future__ import annotations

import argparse
import logging
import sys
from argparse import Namespace
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Union

from agr_gene_mapper.candidate_cache import CacheRegistry
from agr_gene_mapper.candidate_filter import CandidateFilter
from agr_gene_mapper.configuration import GeneMappingConfiguration, load_configuration
from agr_gene_mapper.exceptions import GeneMappingError
from agr_gene_mapper.gene_model import GeneDocument, GeneMention
from agr_gene_mapper.mapping_core import MappingCore, create_mapping_core
from agr_gene_mapper.mapping_result import DocumentMappingResult, MentionMappingResult
from agr_gene_mapper.synhit import SynHit, show_hit_ids

logger = logging.getLogger(__name__)


def configure_logging(log_level):
    # Configure logging based on the log_level argument
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stdout,
        force=True
    )


class GeneMapping:

    def __init__(self, configuration: Union[GeneMappingConfiguration, str, Path],
                 registry: Optional[CacheRegistry] = None, **core_kwargs):
        if not isinstance(configuration, GeneMappingConfiguration):
            configuration = load_configuration(configuration)
        self.configuration = configuration
        self.mapping_core: MappingCore = create_mapping_core(configuration, registry, **core_kwargs)
        self.normalizer = self.mapping_core.normalizer
        self.candidate_filter = CandidateFilter(self.normalizer)

    def map_mention(self, mention: Union[GeneMention, str], document_context: Optional[str] = None
                    ) -> MentionMappingResult:
        if isinstance(mention, str):
            mention = GeneMention(mention, self.normalizer)
        if document_context is not None:
            mention.document_context = document_context
        result = self.mapping_core.map_mention(mention)
        logger.debug("Mapped '%s' to %s", mention.text, result.get_id())
        return result

    def map_document(self, document: GeneDocument) -> DocumentMappingResult:
        if document.normalizer is None:
            document.normalizer = self.normalizer
        return self.mapping_core.map_document(document)

    def map_documents(self, documents: Iterable[GeneDocument], max_workers: int = 4) -> List[DocumentMappingResult]:
        """Maps the documents in a thread pool; results are in input order."""
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.map_document, documents))

    def map_top_n(self, search_term: str, top_n: int) -> List[SynHit]:
        """
        The best candidates of the name with modifiers like 'protein' or 'receptor family'
        removed. Of the top_n best candidates those not removed by the candidate filter
        are returned.
        """
        normalized_search_term = self.candidate_filter.remove_modifiers(self.normalizer.normalize(search_term))
        if not normalized_search_term:
            return []
        logger.info("searching for term: %s as > %s <", search_term, normalized_search_term)
        all_hits = self.mapping_core.candidate_retrieval.get_candidates(normalized_search_term)
        top_n_hits = [hit for hit in all_hits[:top_n]
                      if not self.candidate_filter.filter_out(normalized_search_term, hit.synonym)]
        logger.info("topN mapping found > %s < for candidate '%s': %s", len(top_n_hits), search_term,
                    show_hit_ids(top_n_hits))
        return top_n_hits


def parse_arguments():
    parser = argparse.ArgumentParser(description='Map gene and protein names to gene database ids')
    parser.add_argument("-c", "--config", type=str, required=True, help="Path to the gene mapping configuration")
    parser.add_argument("-n", "--top_n", type=int, default=0,
                        help="Print the top N candidates of each name instead of the mapping result")
    parser.add_argument("-l", "--log_level", type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO', help="Set the logging level")
    parser.add_argument("names", nargs="+", help="Gene or protein names to map")
    return parser.parse_args()


def main():
    args: Namespace = parse_arguments()
    configure_logging(args.log_level)
    try:
        gene_mapping = GeneMapping(args.config)
    except GeneMappingError as e:
        logger.error("Could not create the gene mapper: %s", e)
        sys.exit(1)
    for name in args.names:
        if args.top_n > 0:
            for hit in gene_mapping.map_top_n(name, args.top_n):
                print(f"{name}\t{hit.synonym}\t{','.join(hit.ids)}\t{hit.mention_score:.3f}")
            continue
        result = gene_mapping.map_mention(name)
        if result.is_rejected():
            print(f"{name}\t-")
        else:
            best = result.best_candidate
            print(f"{name}\t{result.get_id()}\t{best.tax_id}\t{best.synonym}\t{result.confidence:.3f}"
                  f"\t{result.match_type.value}")


if __name__ == '__main__':
    main()
