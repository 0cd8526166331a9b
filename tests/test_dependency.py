"""Tests for per-struct dependency extraction."""


from structgraph.dependency import DependencyAnalyzer, deduplicate
from structgraph.models import DependencyEdge, EdgeKind
from structgraph.parser import build_source_model
from structgraph.scope_filter import Blacklist, ScopeFilter


def edges_for(model, name, blacklist=None):
    analyzer = DependencyAnalyzer(model, ScopeFilter(model, blacklist))
    return analyzer.analyze(model.get_type(name))


def summary(edges):
    return [(e.target, e.kind, e.context) for e in edges]


class TestSampleProjectEdges:
    """Edges of the fixture structs, in emission order."""

    def test_user_service(self, sample_model):
        """Fields first, then method bodies."""
        assert summary(edges_for(sample_model, "UserService")) == [
            ("UserRepository", EdgeKind.FIELD, "repo field"),
            ("Cache", EdgeKind.FIELD, "cache field"),
            ("User", EdgeKind.INIT, "CreateUser method"),
            ("User", EdgeKind.METHOD_CALL, "CreateUser -> Validate"),
        ]

    def test_user_repository_implements_store(self, sample_model):
        """Method names covering an interface produce an interface edge."""
        assert summary(edges_for(sample_model, "UserRepository")) == [
            ("Database", EdgeKind.FIELD, "db field"),
            ("Store", EdgeKind.INTERFACE, "implements interface"),
        ]

    def test_database(self, sample_model):
        assert summary(edges_for(sample_model, "Database")) == [
            ("ConnectionPool", EdgeKind.FIELD, "pool field"),
            ("User", EdgeKind.INIT, "QueryByID method"),
        ]

    def test_cache_ignores_stdlib_and_maps_of_any(self, sample_model):
        assert summary(edges_for(sample_model, "Cache")) == [
            ("RedisClient", EdgeKind.FIELD, "client field"),
        ]

    def test_leaf_struct(self, sample_model):
        """errors.New and time.Now are not dependencies."""
        assert edges_for(sample_model, "User") == []

    def test_sources_are_the_struct(self, sample_model):
        assert {e.source for e in edges_for(sample_model, "UserService")} == {"UserService"}

    def test_blacklist_removes_edges(self, sample_model):
        edges = edges_for(sample_model, "UserService", Blacklist(types=["Cache"], packages=["model"]))
        assert summary(edges) == [("UserRepository", EdgeKind.FIELD, "repo field")]


class TestEdgeKinds:
    """Each classification on small projects."""

    def test_embed_and_map_value(self, make_go_project):
        root = make_go_project({
            "app/app.go": (
                "package app\n\n"
                "type Base struct{}\n"
                "type Item struct{}\n"
                "type Node struct{}\n\n"
                "type App struct {\n"
                "\t*Base\n"
                "\titems map[string]*Item\n"
                "\tnodes []Node\n"
                "\tdone chan Node\n"
                "}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("Base", EdgeKind.EMBED, "Base field"),
            ("Item", EdgeKind.FIELD, "items field"),
            ("Node", EdgeKind.FIELD, "nodes field"),
        ]

    def test_new_and_local_constructor(self, make_go_project):
        root = make_go_project({
            "app/app.go": (
                "package app\n\n"
                "type Config struct{}\n"
                "type Pool struct{}\n\n"
                "func NewPool() *Pool { return &Pool{} }\n\n"
                "type App struct{}\n\n"
                "func (a *App) Start() {\n"
                "\tcfg := new(Config)\n"
                "\tp := NewPool()\n"
                "\t_ = NewMissing()\n"
                "\t_, _ = cfg, p\n"
                "}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("Config", EdgeKind.INIT, "Start method"),
            ("Pool", EdgeKind.CONSTRUCTOR, "Start -> NewPool"),
        ]

    def test_cross_package_constructor_uses_return_type(self, make_go_project):
        """The declared result decides the target, not the function name."""
        root = make_go_project({
            "store/store.go": (
                "package store\n\n"
                "type Backend struct{}\n\n"
                "func NewDefault() *Backend { return &Backend{} }\n"
            ),
            "app/app.go": (
                "package app\n\n"
                "import \"example.com/app/store\"\n\n"
                "type App struct{}\n\n"
                "func (a *App) Open() {\n"
                "\t_ = store.NewDefault()\n"
                "}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("Backend", EdgeKind.CONSTRUCTOR, "Open -> NewDefault"),
        ]

    def test_qualified_constructor_prefers_its_package(self, make_go_project):
        root = make_go_project({
            "a/client.go": "package a\n\ntype AClient struct{}\n\nfunc NewClient() *AClient { return nil }\n",
            "b/client.go": "package b\n\ntype BClient struct{}\n\nfunc NewClient() *BClient { return nil }\n",
            "app/app.go": (
                "package app\n\n"
                "import \"example.com/app/b\"\n\n"
                "type App struct{}\n\n"
                "func (x *App) Dial() {\n\t_ = b.NewClient()\n}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("BClient", EdgeKind.CONSTRUCTOR, "Dial -> NewClient"),
        ]

    def test_qualified_constructor_follows_import_alias(self, make_go_project):
        root = make_go_project({
            "a/client.go": "package a\n\ntype AClient struct{}\n\nfunc NewClient() *AClient { return nil }\n",
            "b/client.go": "package b\n\ntype BClient struct{}\n\nfunc NewClient() *BClient { return nil }\n",
            "app/app.go": (
                "package app\n\n"
                "import bb \"example.com/app/b\"\n\n"
                "type App struct{}\n\n"
                "func (x *App) Dial() {\n\t_ = bb.NewClient()\n}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("BClient", EdgeKind.CONSTRUCTOR, "Dial -> NewClient"),
        ]

    def test_method_call_on_local_variable(self, make_go_project):
        root = make_go_project({
            "app/app.go": (
                "package app\n\n"
                "type Worker struct{}\n\n"
                "func (w *Worker) Run() {}\n\n"
                "type App struct{}\n\n"
                "func (a *App) Go() {\n"
                "\tw := &Worker{}\n"
                "\tw.Run()\n"
                "}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [
            ("Worker", EdgeKind.INIT, "Go method"),
            ("Worker", EdgeKind.METHOD_CALL, "Go -> Run"),
        ]

    def test_interface_needs_every_method(self, make_go_project):
        root = make_go_project({
            "app/app.go": (
                "package app\n\n"
                "type Reader interface {\n\tRead() error\n}\n\n"
                "type ReadCloser interface {\n\tRead() error\n\tClose() error\n}\n\n"
                "type Empty interface{}\n\n"
                "type File struct{}\n\n"
                "func (f *File) Read() error { return nil }\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "File")) == [
            ("Reader", EdgeKind.INTERFACE, "implements interface"),
        ]

    def test_self_reference(self, make_go_project):
        """A struct pointing at itself yields a self edge."""
        root = make_go_project({
            "list/list.go": "package list\n\ntype Node struct {\n\tnext *Node\n}\n",
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "Node")) == [("Node", EdgeKind.FIELD, "next field")]


class TestDeduplicate:
    def test_first_occurrence_wins(self):
        edges = [
            DependencyEdge("A", "B", EdgeKind.FIELD, "b field"),
            DependencyEdge("A", "B", EdgeKind.FIELD, "other field"),
            DependencyEdge("A", "B", EdgeKind.INIT, "Make method"),
        ]
        result = deduplicate(edges)
        assert [(e.kind, e.context) for e in result] == [
            (EdgeKind.FIELD, "b field"),
            (EdgeKind.INIT, "Make method"),
        ]

    def test_duplicate_fields_collapse(self, make_go_project):
        root = make_go_project({
            "app/app.go": (
                "package app\n\n"
                "type Conn struct{}\n\n"
                "type App struct {\n\tprimary *Conn\n\treplica *Conn\n}\n"
            ),
        })
        model = build_source_model(root)
        assert summary(edges_for(model, "App")) == [("Conn", EdgeKind.FIELD, "primary field")]
