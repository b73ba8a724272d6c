import json
import random

import pytest

from newsfeed.brain import ModelStore
from newsfeed.classifier import NaiveBayesClassifier
from newsfeed.config import CLASSIFICATIONS
from newsfeed.exceptions import PreconditionError
from newsfeed.schemas import LabeledDocument


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CLASS_WORDS = {
    "Climate Change": "climate warming emissions carbon",
    "Economic Justice": "wages workers union inequality",
    "Reproductive Rights": "abortion clinic contraception roe",
    "LGBTQIA+": "transgender gay pride marriage",
    "Immigration": "border asylum migrants deportation",
}

PREFIXES = {
    "Climate Change": "cc",
    "Economic Justice": "ej",
    "Reproductive Rights": "rr",
    "LGBTQIA+": "lg",
    "Immigration": "im",
}


@pytest.fixture
def store(tmp_path):
    return ModelStore(tmp_path / "brain.json")


@pytest.fixture
def nb(store):
    return NaiveBayesClassifier(store)


def train_all(nb, docs_per_class=3):
    for classification, words in CLASS_WORDS.items():
        for _ in range(docs_per_class):
            nb.train(words, "", classification)
    return nb


def assert_totals_consistent(brain):
    assert brain.total_documents == sum(brain.class_counts[c] for c in CLASSIFICATIONS)


def labeled_corpus(sizes):
    """One document per (class, index), each carrying a token unique to it, e.g. 'ccdoc7'."""
    return [
        LabeledDocument(title=f"{PREFIXES[c]}doc{i} shared", content="", classification=c)
        for c, n in sizes.items()
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# train
# ---------------------------------------------------------------------------

class TestTrain:
    def test_increments_class_and_total_counts(self, nb):
        nb.train("Carbon tax vote", "", "Climate Change")

        assert nb.brain.class_counts["Climate Change"] == 1
        assert nb.brain.total_documents == 1
        assert_totals_consistent(nb.brain)

    def test_counts_word_frequencies_not_just_presence(self, nb):
        nb.train("carbon carbon carbon", "heat", "Climate Change")

        assert nb.brain.word_counts["Climate Change"]["carbon"] == 3
        assert nb.brain.word_counts["Climate Change"]["heat"] == 1
        assert nb.brain.vocabulary_frequency["carbon"] == 3

    def test_unknown_classification_is_a_no_op(self, nb):
        nb.train("Match report", "goal", "Sports")

        assert nb.brain.total_documents == 0
        assert "goal" not in nb.brain.vocabulary_frequency

    def test_word_below_admission_frequency_stays_out_of_vocabulary(self, nb):
        nb.train("wind", "", "Climate Change")

        assert "wind" not in nb.brain.vocabulary
        assert nb.brain.word_counts["Climate Change"]["wind"] == 1

    def test_word_admitted_once_global_frequency_reaches_two(self, nb):
        nb.train("wind", "", "Climate Change")
        nb.train("wind farms", "", "Economic Justice")

        assert "wind" in nb.brain.vocabulary
        assert "farms" not in nb.brain.vocabulary

    def test_repeated_word_in_one_document_is_admitted(self, nb):
        nb.train("solar solar", "", "Climate Change")
        assert "solar" in nb.brain.vocabulary

    def test_admitted_word_is_never_removed_by_training(self, nb):
        nb.train("solar solar", "", "Climate Change")
        for _ in range(5):
            nb.train("asylum border", "", "Immigration")
        assert "solar" in nb.brain.vocabulary

    def test_admission_threshold_is_configurable(self, store):
        nb = NaiveBayesClassifier(store, min_vocabulary_frequency=3)
        nb.train("solar solar", "", "Climate Change")
        assert "solar" not in nb.brain.vocabulary

    def test_persists_after_every_call(self, nb, store):
        nb.train("carbon", "", "Climate Change")

        on_disk = json.loads(store.path.read_text(encoding="utf-8"))
        assert on_disk["total_documents"] == 1
        assert on_disk["word_counts"]["Climate Change"] == {"carbon": 1}

    def test_refreshes_class_weights(self, nb):
        nb.train("carbon", "", "Climate Change")
        nb.train("carbon", "", "Climate Change")
        nb.train("border", "", "Immigration")

        assert nb.class_weights["Immigration"] == 2.0
        assert nb.class_weights["Climate Change"] == 1.0

    def test_training_survives_reload(self, nb, store):
        train_all(nb)
        reloaded = NaiveBayesClassifier(ModelStore(store.path))

        assert reloaded.classify(CLASS_WORDS["Immigration"], "") == "Immigration"


# ---------------------------------------------------------------------------
# retrain_with_balanced_data
# ---------------------------------------------------------------------------

class TestRetrainWithBalancedData:
    SIZES = {
        "Climate Change": 10,
        "Economic Justice": 10,
        "Reproductive Rights": 3,
        "LGBTQIA+": 10,
        "Immigration": 10,
    }

    def test_every_class_gets_the_minimum_size(self, nb):
        trained = nb.retrain_with_balanced_data(labeled_corpus(self.SIZES), rng=random.Random(42))

        assert trained == 3
        assert nb.brain.class_counts == {c: 3 for c in CLASSIFICATIONS}
        assert nb.brain.total_documents == 15
        assert_totals_consistent(nb.brain)

    def test_discarded_documents_leave_no_word_counts(self, nb):
        nb.retrain_with_balanced_data(labeled_corpus(self.SIZES), rng=random.Random(7))

        for classification, prefix in PREFIXES.items():
            doc_tokens = [w for w in nb.brain.word_counts[classification] if w.startswith(f"{prefix}doc")]
            assert len(doc_tokens) == 3
            for other in CLASSIFICATIONS:
                if other != classification:
                    assert not any(w.startswith(f"{prefix}doc") for w in nb.brain.word_counts[other])

        assert sum(1 for w in nb.brain.vocabulary_frequency if "doc" in w) == 15

    def test_resets_previous_training(self, nb):
        train_all(nb, docs_per_class=5)
        nb.retrain_with_balanced_data(labeled_corpus(self.SIZES), rng=random.Random(1))

        assert "carbon" not in nb.brain.word_counts["Climate Change"]
        assert nb.brain.total_documents == 15

    def test_vocabulary_uses_admission_rule(self, nb):
        nb.retrain_with_balanced_data(labeled_corpus(self.SIZES), rng=random.Random(3))

        assert "shared" in nb.brain.vocabulary
        assert not any(w.startswith("ccdoc") for w in nb.brain.vocabulary)

    def test_equal_weights_after_rebalance(self, nb):
        nb.retrain_with_balanced_data(labeled_corpus(self.SIZES), rng=random.Random(5))
        assert nb.class_weights == {c: 1.0 for c in CLASSIFICATIONS}

    def test_empty_class_is_refused_and_brain_untouched(self, nb):
        train_all(nb)
        before = nb.brain.to_dict()
        sizes = dict(self.SIZES, Immigration=0)

        with pytest.raises(PreconditionError, match="Immigration"):
            nb.retrain_with_balanced_data(labeled_corpus(sizes))

        assert nb.brain.to_dict() == before

    def test_unknown_labels_are_ignored(self, nb):
        documents = labeled_corpus(self.SIZES) + [LabeledDocument(title="match report", classification="Sports")]
        nb.retrain_with_balanced_data(documents, rng=random.Random(0))

        assert "match" not in nb.brain.vocabulary_frequency


# ---------------------------------------------------------------------------
# learn_from_correction
# ---------------------------------------------------------------------------

class TestLearnFromCorrection:
    def test_moves_a_document_from_predicted_to_correct_class(self, nb):
        train_all(nb)
        title, content = "border asylum", "migrants"
        assert nb.classify(title, content) == "Immigration"

        predicted = nb.learn_from_correction(title, content, "Climate Change")

        assert predicted == "Immigration"
        assert nb.brain.class_counts["Immigration"] == 2
        assert nb.brain.class_counts["Climate Change"] == 4
        assert nb.brain.total_documents == 15

    def test_correction_keeps_word_counts_of_predicted_class(self, nb):
        train_all(nb)
        nb.learn_from_correction("border asylum", "", "Climate Change")

        assert nb.brain.word_counts["Immigration"]["border"] == 3
        assert nb.brain.word_counts["Climate Change"]["border"] == 1

    def test_matching_prediction_only_trains(self, nb):
        train_all(nb)
        nb.learn_from_correction("border asylum", "", "Immigration")

        assert nb.brain.class_counts["Immigration"] == 4
        assert nb.brain.total_documents == 16
        assert_totals_consistent(nb.brain)

    def test_no_prediction_only_trains(self, nb):
        nb.learn_from_correction("carbon", "", "Climate Change")

        assert nb.brain.class_counts["Climate Change"] == 1
        assert nb.brain.total_documents == 1

    def test_counts_never_go_negative(self, store):
        nb = NaiveBayesClassifier(store)
        train_all(nb)
        with store.transaction() as brain:
            brain.class_counts["Immigration"] = 0
            brain.total_documents = 0

        nb.learn_from_correction("border asylum migrants deportation", "", "Climate Change")

        assert nb.brain.class_counts["Immigration"] >= 0
        assert nb.brain.total_documents >= 0

    def test_predicted_class_without_documents_keeps_totals_consistent(self, nb):
        for classification, words in CLASS_WORDS.items():
            if classification != "Immigration":
                nb.train(words, "", classification)
        # Keywords alone give Immigration words but no documents
        nb.update_from_stopwords([("border", "Immigration"), ("asylum", "Immigration")] * 5)

        predicted = nb.learn_from_correction("border asylum", "", "Climate Change")

        assert predicted == "Immigration"
        assert nb.brain.class_counts["Immigration"] == 0
        assert nb.brain.class_counts["Climate Change"] == 2
        assert nb.brain.total_documents == 5
        assert_totals_consistent(nb.brain)

    def test_unknown_label_is_ignored(self, nb):
        assert nb.learn_from_correction("carbon", "", "Sports") is None
        assert nb.brain.total_documents == 0


# ---------------------------------------------------------------------------
# update_from_stopwords
# ---------------------------------------------------------------------------

class TestUpdateFromStopwords:
    def test_adds_words_to_vocabulary_and_class_counts(self, nb):
        applied = nb.update_from_stopwords([("Glacier", "Climate Change"), ("visa", "Immigration")])

        assert applied == 2
        assert {"glacier", "visa"} <= nb.brain.vocabulary
        assert nb.brain.word_counts["Climate Change"]["glacier"] == 1
        assert nb.brain.word_counts["Immigration"]["visa"] == 1

    def test_increments_existing_counts_by_one(self, nb):
        nb.train("glacier glacier", "", "Climate Change")
        nb.update_from_stopwords([("glacier", "Climate Change")])

        assert nb.brain.word_counts["Climate Change"]["glacier"] == 3

    def test_bypasses_document_counts(self, nb):
        nb.update_from_stopwords([("glacier", "Climate Change")])

        assert nb.brain.total_documents == 0
        assert nb.brain.class_counts["Climate Change"] == 0
        assert "glacier" not in nb.brain.vocabulary_frequency

    def test_skips_unknown_classification(self, nb):
        assert nb.update_from_stopwords([("goal", "Sports")]) == 0
        assert "goal" not in nb.brain.vocabulary

    def test_keywords_steer_classification(self, nb):
        train_all(nb)
        assert nb.classify("permafrost", "") is None

        nb.update_from_stopwords([("permafrost", "Climate Change")] * 10)

        assert nb.classify("permafrost", "") == "Climate Change"


# ---------------------------------------------------------------------------
# import_initial_training
# ---------------------------------------------------------------------------

class TestImportInitialTraining:
    def test_replaces_brain_and_persists(self, nb, store):
        train_all(nb)
        brain = nb.import_initial_training({
            "total_documents": 2,
            "category_counts": {"Climate Change": 1, "Immigration": 1},
            "word_counts": {"Climate Change": {"glacier": 2}, "Immigration": {"visa": 1}},
        })

        assert brain.total_documents == 2
        assert brain.vocabulary == {"glacier", "visa"}
        assert json.loads(store.path.read_text(encoding="utf-8"))["total_documents"] == 2

    def test_refreshes_weights(self, nb):
        nb.import_initial_training({
            "total_documents": 3,
            "category_counts": {"Climate Change": 2, "Immigration": 1},
            "word_counts": {},
        })
        assert nb.class_weights["Immigration"] == 2.0

    def test_rejects_invalid_document(self, nb):
        with pytest.raises(ValueError):
            nb.import_initial_training([])
