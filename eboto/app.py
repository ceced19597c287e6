import logging
from flask import Blueprint, Flask, current_app, request, jsonify
from flask_cors import CORS
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required
from werkzeug.exceptions import HTTPException

from eboto import admin, ballot, guard, tally
from eboto.auth import jwt, commissioner_required, current_identity
from eboto.config import Config
from eboto.constants import DEFAULT_PUBLICITY
from eboto.errors import EbotoError, NotFound, Unauthorized
from eboto.models import Store, active, get_store, to_json, utcnow

logger = logging.getLogger(__name__)

bp = Blueprint("eboto", __name__)


def create_app(config_overrides=None, store=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    logging.basicConfig(level=app.config["LOG_LEVEL"])
    CORS(app, origins=app.config["CORS_ORIGINS"])
    jwt.init_app(app)

    if store is None:
        store = Store.from_config(app.config)
    store.ensure_indexes()
    app.extensions["eboto_store"] = store

    app.register_blueprint(bp)
    app.register_error_handler(EbotoError, handle_eboto_error)
    app.register_error_handler(Exception, handle_unexpected_error)
    return app


def handle_eboto_error(e):
    return jsonify(e.to_dict()), e.status_code


def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.name.lower().replace(" ", "_"), "msg": e.description}), e.code
    logger.exception("unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "internal_error", "msg": "internal error"}), 500


def _body():
    return request.get_json(silent=True) or {}


def _pick(data, fields):
    return {f: data[f] for f in fields if f in data}


def _window_opts():
    return {
        "enforce_voting_hours": current_app.config["ENFORCE_VOTING_HOURS"],
        "tz": current_app.config["VOTING_TIMEZONE"],
    }


def _require_view(store, election):
    """Apply the election's publicity to whoever is asking."""
    user_id, email = current_identity()
    commissioner = admin.is_commissioner(store, election["_id"], user_id)
    voter = bool(email) and store.voters.find_one(active(election_id=election["_id"], email=email)) is not None
    if guard.can_view_election(election, is_commissioner=commissioner, is_voter=voter):
        return email
    if election.get("publicity") == "PRIVATE":
        # private elections don't reveal that they exist
        raise NotFound("election not found")
    raise Unauthorized("only voters of this election can view it")


@bp.route("/health", methods=["GET"])
def health_check():
    return jsonify({"status": "healthy", "database": "MongoDB"}), 200


# ---------------------------
# Elections
# ---------------------------
@bp.route("/elections", methods=["POST"])
@jwt_required()
def create_election():
    data = _body()
    election = admin.create_election(
        get_store(),
        get_jwt_identity(),
        name=data.get("name"),
        slug=data.get("slug"),
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        template=data.get("template", 0),
        voting_hours=data.get("voting_hours"),
        publicity=data.get("publicity", DEFAULT_PUBLICITY),
        description=data.get("description"),
    )
    return jsonify({"msg": "election_created", "election": to_json(election)}), 201


@bp.route("/my_elections", methods=["GET"])
@jwt_required()
def my_elections():
    out = admin.list_my_elections(get_store(), get_jwt_identity())
    return jsonify({"elections": to_json(out)}), 200


@bp.route("/elections/<slug>", methods=["GET"])
def election_page(slug):
    store = get_store()
    election = admin.get_election_by_slug(store, slug)
    email = _require_view(store, election)
    page = admin.get_election_page(store, election["slug"], utcnow(), voter_email=email, **_window_opts())
    return jsonify(to_json(page)), 200


@bp.route("/elections/<election_id>", methods=["PUT"])
@commissioner_required
def edit_election(election_id):
    fields = _pick(_body(), ("name", "description", "slug", "start_date", "end_date", "voting_hours", "publicity"))
    election = admin.edit_election(get_store(), election_id, get_jwt_identity(), **fields)
    return jsonify({"msg": "updated", "election": to_json(election)}), 200


@bp.route("/elections/<election_id>", methods=["DELETE"])
@commissioner_required
def delete_election(election_id):
    admin.delete_election(get_store(), election_id, get_jwt_identity())
    return jsonify({"msg": "deleted"}), 200


@bp.route("/elections/<election_id>/audit_logs", methods=["GET"])
@commissioner_required
def election_audit_logs(election_id):
    limit = request.args.get("limit", 200, type=int)
    out = []
    query = {"details.election_id": str(admin.get_election(get_store(), election_id)["_id"])}
    for a in get_store().audit_logs.find(query).sort("timestamp", -1).limit(limit):
        out.append({
            "action": a.get("action"),
            "actor": a.get("actor"),
            "details": a.get("details"),
            "timestamp": to_json(a.get("timestamp")),
        })
    return jsonify({"audit_logs": out}), 200


# ---------------------------
# Partylists / positions / candidates
# ---------------------------
@bp.route("/elections/<election_id>/partylists", methods=["GET"])
@commissioner_required
def list_partylists(election_id):
    include_ind = request.args.get("include_independent", "false").lower() in ("1", "true", "yes")
    out = admin.list_partylists(get_store(), election_id, include_independent=include_ind)
    return jsonify({"partylists": to_json(out)}), 200


@bp.route("/elections/<election_id>/partylists", methods=["POST"])
@commissioner_required
def create_partylist(election_id):
    data = _body()
    partylist = admin.create_partylist(
        get_store(), election_id, get_jwt_identity(),
        name=data.get("name"), acronym=data.get("acronym"),
        description=data.get("description"), logo_link=data.get("logo_link"),
    )
    return jsonify({"msg": "partylist_created", "partylist": to_json(partylist)}), 201


@bp.route("/elections/<election_id>/partylists/<partylist_id>", methods=["PUT"])
@commissioner_required
def edit_partylist(election_id, partylist_id):
    fields = _pick(_body(), ("name", "acronym", "description", "logo_link"))
    partylist = admin.edit_partylist(get_store(), election_id, partylist_id, get_jwt_identity(), **fields)
    return jsonify({"msg": "updated", "partylist": to_json(partylist)}), 200


@bp.route("/elections/<election_id>/partylists/<partylist_id>", methods=["DELETE"])
@commissioner_required
def delete_partylist(election_id, partylist_id):
    admin.delete_partylist(get_store(), election_id, partylist_id, get_jwt_identity())
    return jsonify({"msg": "deleted"}), 200


@bp.route("/elections/<election_id>/positions", methods=["GET"])
@commissioner_required
def list_positions(election_id):
    return jsonify({"positions": to_json(admin.list_positions(get_store(), election_id))}), 200


@bp.route("/elections/<election_id>/positions", methods=["POST"])
@commissioner_required
def create_position(election_id):
    data = _body()
    position = admin.create_position(
        get_store(), election_id, get_jwt_identity(),
        name=data.get("name"), min_count=data.get("min", 0), max_count=data.get("max", 1),
        description=data.get("description"),
    )
    return jsonify({"msg": "position_created", "position": to_json(position)}), 201


@bp.route("/elections/<election_id>/positions/<position_id>", methods=["PUT"])
@commissioner_required
def edit_position(election_id, position_id):
    fields = _pick(_body(), ("name", "description", "min", "max"))
    position = admin.edit_position(get_store(), election_id, position_id, get_jwt_identity(), **fields)
    return jsonify({"msg": "updated", "position": to_json(position)}), 200


@bp.route("/elections/<election_id>/positions/<position_id>", methods=["DELETE"])
@commissioner_required
def delete_position(election_id, position_id):
    admin.delete_position(get_store(), election_id, position_id, get_jwt_identity())
    return jsonify({"msg": "deleted"}), 200


@bp.route("/elections/<election_id>/candidates", methods=["GET"])
@commissioner_required
def list_candidates(election_id):
    return jsonify({"candidates": to_json(admin.list_candidates(get_store(), election_id))}), 200


@bp.route("/elections/<election_id>/candidates", methods=["POST"])
@commissioner_required
def create_candidate(election_id):
    data = _body()
    candidate = admin.create_candidate(
        get_store(), election_id, get_jwt_identity(),
        slug=data.get("slug"),
        first_name=data.get("first_name"),
        middle_name=data.get("middle_name"),
        last_name=data.get("last_name"),
        position_id=data.get("position_id"),
        partylist_id=data.get("partylist_id"),
    )
    return jsonify({"msg": "candidate_created", "candidate": to_json(candidate)}), 201


@bp.route("/elections/<election_id>/candidates/<candidate_id>", methods=["PUT"])
@commissioner_required
def edit_candidate(election_id, candidate_id):
    fields = _pick(_body(), ("slug", "first_name", "middle_name", "last_name", "position_id", "partylist_id"))
    candidate = admin.edit_candidate(get_store(), election_id, candidate_id, get_jwt_identity(), **fields)
    return jsonify({"msg": "updated", "candidate": to_json(candidate)}), 200


@bp.route("/elections/<election_id>/candidates/<candidate_id>", methods=["DELETE"])
@commissioner_required
def delete_candidate(election_id, candidate_id):
    admin.delete_candidate(get_store(), election_id, candidate_id, get_jwt_identity())
    return jsonify({"msg": "deleted"}), 200


# ---------------------------
# Voters
# ---------------------------
@bp.route("/elections/<election_id>/voters", methods=["GET"])
@commissioner_required
def list_voters(election_id):
    return jsonify({"voters": to_json(admin.list_voters(get_store(), election_id))}), 200


@bp.route("/elections/<election_id>/voters", methods=["POST"])
@commissioner_required
def add_voter(election_id):
    voter = admin.create_voter(get_store(), election_id, get_jwt_identity(), email=_body().get("email"))
    return jsonify({"msg": "added", "voter": to_json(voter)}), 201


@bp.route("/elections/<election_id>/voters/<voter_id>", methods=["PUT"])
@commissioner_required
def edit_voter(election_id, voter_id):
    voter = admin.edit_voter(get_store(), election_id, voter_id, get_jwt_identity(), email=_body().get("email"))
    return jsonify({"msg": "updated", "voter": to_json(voter)}), 200


@bp.route("/elections/<election_id>/voters/<voter_id>", methods=["DELETE"])
@commissioner_required
def remove_voter(election_id, voter_id):
    admin.delete_voter(get_store(), election_id, voter_id, get_jwt_identity())
    return jsonify({"msg": "removed"}), 200


# ---------------------------
# Vote / results
# ---------------------------
@bp.route("/elections/<election_id>/vote", methods=["POST"])
@jwt_required()
def cast_vote(election_id):
    email = get_jwt().get("email")
    receipt = ballot.submit_ballot(get_store(), election_id, email, _body().get("votes"), utcnow(), **_window_opts())
    return jsonify({
        "msg": "vote recorded",
        "ballot_id": str(receipt["ballot_id"]),
        "vote_count": receipt["vote_count"],
    }), 201


@bp.route("/elections/<slug>/results", methods=["GET"])
def election_results(slug):
    store = get_store()
    election = admin.get_election_by_slug(store, slug)
    _require_view(store, election)
    return jsonify(tally.get_results(store, election["slug"], utcnow())), 200


@bp.route("/elections/<election_id>/results", methods=["POST"])
@commissioner_required
def generate_results(election_id):
    result = tally.generate_final_results(get_store(), election_id, utcnow(), get_jwt_identity())
    return jsonify({"msg": "results_generated", "results": result}), 201


@bp.route("/elections/<slug>/results/final", methods=["GET"])
def final_results(slug):
    store = get_store()
    election = admin.get_election_by_slug(store, slug)
    _require_view(store, election)
    return jsonify(tally.get_final_results(store, election["slug"])), 200


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000)
