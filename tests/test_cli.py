from qr_checkin.models import StaffUser


def test_init_db(app):
    result = app.test_cli_runner().invoke(args=['init-db'])

    assert result.exit_code == 0
    assert 'Database tables created' in result.output


def test_create_admin(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['create-admin', 'Boss@Example.com', '--password', 'secret1',
                                 '--full-name', 'The Boss'])

    assert result.exit_code == 0, result.output
    with app.app_context():
        user = StaffUser.query.filter_by(email='boss@example.com').one()
        assert user.is_admin
        assert user.check_password('secret1')

    again = runner.invoke(args=['create-admin', 'boss@example.com', '--password', 'secret1'])
    assert again.exit_code != 0
    assert 'already exists' in again.output


def test_create_admin_checks_setup_key(app):
    app.config['ADMIN_SETUP_KEY'] = 'let-me-in'
    runner = app.test_cli_runner()

    denied = runner.invoke(args=['create-admin', 'boss@example.com', '--password', 'secret1'])
    assert denied.exit_code != 0
    assert 'Invalid setup key' in denied.output

    allowed = runner.invoke(args=['create-admin', 'boss@example.com', '--password', 'secret1',
                                  '--setup-key', 'let-me-in'])
    assert allowed.exit_code == 0, allowed.output
