import os
import shutil
import logging
import threading
from datetime import datetime
from urllib.parse import urlparse
from concurrent.futures import ProcessPoolExecutor, as_completed

from .document import DocumentSource, SerializedDocument
from .errors import InkwellError, MissingRequiredField, ParseError, PluginError
from .plugins import resolve_plugins
from .renderer import PageRenderer
from .sources import check_identifier
from .transformer import ContentTransformer
from .utils import DEFAULT_WORDS_PER_MINUTE, get_read_time, parse_date

SCOPE_FIELDS = ('title', 'description', 'date', 'tags', 'imageUrl')

# Multiprocessing kicks in at this many posts
PARALLEL_THRESHOLD = 12

# Thread-local storage for PostBuilder instances
thread_local = threading.local()


def initializer(builder_options):
    """Create one PostBuilder per worker process; plugins are resolved here, once."""
    thread_local.post_builder = PostBuilder(**builder_options)


def process_post(identifier, record, kind):
    return thread_local.post_builder.build(identifier, record, kind)


class PostBuilder:
    """Build the page for one post: check, transform, render, write."""

    def __init__(self, output_dir, plugins=None, site_url=None, site_title=None, blog_slug='blog',
                 templates_dir=None, site_hosts=(), words_per_minute=DEFAULT_WORDS_PER_MINUTE, cache_dir=None):
        self.output_dir = output_dir
        self.blog_slug = blog_slug
        self.words_per_minute = words_per_minute
        self.cache_dir = cache_dir
        self.logger = logging.getLogger('PostBuilder')

        self.transformer = ContentTransformer(resolve_plugins(plugins, site_hosts=site_hosts))
        self.renderer = PageRenderer(templates_dir, site_url=site_url, site_title=site_title, blog_slug=blog_slug)

    def scope_for(self, record):
        return {key: record.get(key) for key in SCOPE_FIELDS}

    def check_required(self, identifier, record):
        """A post without a usable date is treated as not found."""
        if parse_date(record.get('date')) is None:
            raise MissingRequiredField('date', identifier)

    def transform(self, identifier, record, kind='mdx'):
        """Transform a record's body, reusing a cached artifact when one exists."""
        source = DocumentSource(record.get('body') or '', kind)
        scope = self.scope_for(record)

        cache_path = None
        if self.cache_dir:
            key = self.transformer.fingerprint(source, scope)
            cache_path = os.path.join(self.cache_dir, f"{key}.json")
            if os.path.exists(cache_path):
                try:
                    with open(cache_path, 'r', encoding='utf-8') as f:
                        document = SerializedDocument.from_json(f.read())
                    self.logger.debug(f"Cache hit for {identifier}")
                    return document
                except (IOError, OSError, ValueError) as e:
                    self.logger.warning(f"Ignoring unreadable cache entry {cache_path}: {e}")

        document = self.transformer.transform(source, scope)

        if cache_path:
            try:
                os.makedirs(self.cache_dir, exist_ok=True)
                with open(cache_path, 'w', encoding='utf-8') as f:
                    f.write(document.to_json())
            except (IOError, OSError, PermissionError) as e:
                self.logger.warning(f"Failed to write cache entry {cache_path}: {e}")
        return document

    def build(self, identifier, record, kind='mdx'):
        """Build a single post page.

        Returns a result dict whose ``status`` is ``built``, ``not_found``
        or ``failed``. Errors never escape: each post succeeds or fails on
        its own.
        """
        result = {'identifier': identifier, 'status': 'failed', 'path': None, 'error': None}
        try:
            check_identifier(identifier)
            self.check_required(identifier, record)
            document = self.transform(identifier, record, kind)
            read_time = get_read_time(record.get('body') or '', self.words_per_minute)
            html = self.renderer.render_post(identifier, document, read_time)

            post_dir = os.path.join(self.output_dir, self.blog_slug, identifier)
            os.makedirs(post_dir, exist_ok=True)
            output_path = os.path.join(post_dir, 'index.html')
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(html)

            self.logger.debug(f"Generated HTML: {output_path}")
            result.update(status='built', path=output_path, read_time=read_time)
        except MissingRequiredField as e:
            self.logger.warning(f"Skipping {identifier}, treated as not found: {e}")
            result.update(status='not_found', error=str(e))
        except (ParseError, PluginError) as e:
            self.logger.error(f"Failed to transform {identifier}: {e}")
            result['error'] = str(e)
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to write page for {identifier}: {e}")
            result['error'] = str(e)
        except Exception as e:
            self.logger.error(f"Error building {identifier}: {e}")
            result['error'] = str(e)
        return result


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "Site build completed in",
            "Total posts generated:",
            "Total posts not found:",
            "Total posts failed:",
            "Building 404 page",
            "Using multiprocessing",
            "Using single-threaded",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


class SiteBuilder:
    """Build every post a content source knows about, plus the 404 page."""

    def __init__(self, source, output_dir='output', plugins=None, site_url=None, site_title=None,
                 blog_slug='blog', templates_dir=None, site_hosts=None, words_per_minute=DEFAULT_WORDS_PER_MINUTE,
                 cache_dir=None, log_dir=None, workers=None):
        self.source = source
        self.output_dir = output_dir
        self.blog_slug = blog_slug
        self.log_dir = log_dir
        self.workers = workers
        self.posts_generated = 0
        self.posts_not_found = 0
        self.posts_failed = 0
        self.results = []

        if site_hosts is None and site_url:
            hostname = urlparse(site_url).hostname
            site_hosts = [hostname] if hostname else []

        # Plain, picklable options so worker processes can build their own PostBuilder
        self.builder_options = {
            'output_dir': output_dir,
            'plugins': list(plugins) if plugins is not None else None,
            'site_url': site_url,
            'site_title': site_title,
            'blog_slug': blog_slug,
            'templates_dir': templates_dir,
            'site_hosts': list(site_hosts or []),
            'words_per_minute': words_per_minute,
            'cache_dir': cache_dir,
        }

        self.setup_logging()
        self.create_output_dir()

        # Resolve plugins and templates up front so configuration errors fail fast
        self.post_builder = PostBuilder(**self.builder_options)

    def setup_logging(self):
        """Set up logging configuration."""
        self.logger = logging.getLogger('SiteBuilder')
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            # Console handler with filter
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(InfoFilter())
            console_handler.setFormatter(logging.Formatter('%(message)s'))

            # File handler for all logs
            logs_dir = self.log_dir or os.path.join(os.getcwd(), 'logs')
            os.makedirs(logs_dir, exist_ok=True)
            log_filename = datetime.now().strftime('inkwell_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(logs_dir, log_filename))
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

            self.logger.addHandler(console_handler)
            self.logger.addHandler(file_handler)

    def create_output_dir(self):
        """Create the output directory, removing only what a previous build generated."""
        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir, exist_ok=True)
            return

        generated = {self.blog_slug, '404.html'}
        preserved_items = []
        for item in os.listdir(self.output_dir):
            item_path = os.path.join(self.output_dir, item)
            if item in generated:
                if os.path.isdir(item_path):
                    shutil.rmtree(item_path)
                else:
                    os.remove(item_path)
            else:
                preserved_items.append(item)

        if preserved_items:
            self.logger.info(f"Preserved non-Inkwell files: {', '.join(sorted(preserved_items))}")

    def collect_tasks(self):
        """Fetch every record up front; a record that cannot be fetched fails alone."""
        tasks = []
        for identifier in self.source.identifiers():
            try:
                record = self.source.get(identifier)
            except InkwellError as e:
                self.logger.error(f"Failed to load {identifier}: {e}")
                self.record_result({'identifier': identifier, 'status': 'failed', 'path': None, 'error': str(e)})
                continue
            tasks.append((identifier, record, self.source.kind_for(identifier)))
        return tasks

    def record_result(self, result):
        self.results.append(result)
        if result['status'] == 'built':
            self.posts_generated += 1
        elif result['status'] == 'not_found':
            self.posts_not_found += 1
        else:
            self.posts_failed += 1

    def build_posts(self):
        """Build all posts, in parallel once there are enough of them."""
        tasks = self.collect_tasks()
        if not tasks:
            self.logger.warning("No posts found to build.")
            return

        if len(tasks) >= PARALLEL_THRESHOLD:
            self.logger.info(f"Using multiprocessing for {len(tasks)} posts with {self.workers or os.cpu_count()} workers")
            self._build_with_multiprocessing(tasks)
        else:
            self.logger.info(f"Using single-threaded processing for {len(tasks)} posts")
            self._build_single_threaded(tasks)

    def _build_single_threaded(self, tasks):
        for identifier, record, kind in tasks:
            self.record_result(self.post_builder.build(identifier, record, kind))

    def _build_with_multiprocessing(self, tasks):
        with ProcessPoolExecutor(
            max_workers=self.workers or os.cpu_count(),
            initializer=initializer,
            initargs=(self.builder_options,)
        ) as executor:
            futures = {executor.submit(process_post, *task): task[0] for task in tasks}
            for future in as_completed(futures):
                identifier = futures[future]
                try:
                    self.record_result(future.result())
                except Exception as e:
                    self.logger.error(f"Error building post {identifier}: {e}")
                    self.record_result({'identifier': identifier, 'status': 'failed', 'path': None, 'error': str(e)})
        # as_completed order is arbitrary
        self.results.sort(key=lambda result: result['identifier'])

    def build_404_page(self):
        """Build 404 error page."""
        html = self.post_builder.renderer.render_not_found()
        output_file = os.path.join(self.output_dir, '404.html')
        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                f.write(html)
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to write 404 page {output_file}: {e}")
            return False
        self.logger.info("Building 404 page")
        return True

    def build(self):
        """Main build process."""
        self.logger.info("Starting site build...")
        self.build_posts()
        self.build_404_page()
        return self.results

    @property
    def failed(self):
        return [result for result in self.results if result['status'] == 'failed']
